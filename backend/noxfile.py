import nox

PYTHON_VERSION = "3.11"

# pyproject.toml sits one level up, next to backend/
PROJECT_ROOT = ".."


@nox.session(python=PYTHON_VERSION)
def tests(session):
    session.run(
        "poetry", "-C", PROJECT_ROOT, "install", "--extras", "test", external=True
    )
    session.run("poetry", "-C", PROJECT_ROOT, "run", "pytest", "tests/unit", external=True)


@nox.session(python=PYTHON_VERSION)
def lint(session):
    session.run("poetry", "-C", PROJECT_ROOT, "install", "--extras", "dev", external=True)
    session.run("poetry", "-C", PROJECT_ROOT, "run", "ruff", "check", ".", external=True)


@nox.session(python=PYTHON_VERSION)
def format(session):
    session.run("poetry", "-C", PROJECT_ROOT, "install", "--extras", "dev", external=True)
    session.run(
        "poetry", "-C", PROJECT_ROOT, "run", "black", "--check", "api", "common", "packages", external=True
    )
    session.run("poetry", "-C", PROJECT_ROOT, "run", "ruff", "check", ".", external=True)
