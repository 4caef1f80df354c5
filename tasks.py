import os

from invoke import task, Context


IS_CI = os.getenv("GITHUB_ACTIONS") == "true"


@task
def doc(c: Context):
    """Generate documentation"""
    c.run("pdoc -o ./doc aio_featureservice/", echo=True, pty=True)


@task
def fmt(c: Context):
    """Run code formatters"""
    c.run("isort aio_featureservice test", echo=True, pty=True)
    c.run("ruff format aio_featureservice test tasks.py", echo=True, pty=True)


@task
def install(c: Context):
    """Install all dependencies"""
    c.run("poetry install --all-extras", echo=True, pty=True)


@task
def lint(c: Context):
    """Run linter and type checker"""
    c.run("ruff check aio_featureservice/", echo=True, warn=True, pty=True)
    c.run("mypy aio_featureservice/", echo=True, warn=True, pty=True)


@task
def test(c: Context):
    """Run all tests in parallel"""
    _pytest(c, cov=not IS_CI)


@task
def test_cov(c: Context):
    """Run all tests in parallel, with coverage report"""
    _pytest(c, cov=True)


def _pytest(c: Context, *, cov: bool):
    cmd = ["poetry", "run", "pytest", "-vv", "--numprocesses=auto", "--dist=loadgroup"]

    if cov:
        cmd.append("--cov=aio_featureservice/")

    if cov and IS_CI:
        cmd.append("--cov-report=xml")

    c.run(" ".join(cmd), echo=True, pty=True)

    if cov and not IS_CI:
        c.run("rm .coverage*", echo=True, pty=True)


@task
def test_publish(c: Context):
    """Perform a dry run of publishing the package"""
    c.run("poetry publish --build --dry-run --no-interaction", echo=True, pty=True)


@task
def tree(c: Context):
    """Display the tree of dependencies"""
    c.run("poetry show --only=main --tree", echo=True, pty=True)
