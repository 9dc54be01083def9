# type: ignore
from invoke import task


@task
def venv(ctx):
    """Create the development environment with uv."""
    print("Syncing devlink development environment...")
    ctx.run("uv sync --extra dev")


@task
def fmt(ctx):
    """Apply ruff fixes and formatting."""
    ctx.run("ruff check --fix src tests", pty=True)
    ctx.run("ruff format src tests", pty=True)


@task
def lint(ctx):
    """
    Lint, format-check and type-check the package.
    """
    ctx.run("ruff check src tests", pty=True)
    ctx.run("ruff format --check src tests", pty=True)
    ctx.run("mypy src", pty=True)


@task
def test(ctx, k=None):
    """
    Run the test suite with coverage. Use -k to select tests by expression.
    """
    selector = f" -k '{k}'" if k else ""
    ctx.run(f"pytest --cov=devlink --cov-report=term-missing{selector}", pty=True)


@task(pre=[lint, test])
def ci(ctx):
    """Run lint and tests, as CI does."""


@task
def build_package(ctx):
    """
    Build sdist and wheel into dist/.
    """
    ctx.run("rm -rf dist")
    ctx.run("uv build")
