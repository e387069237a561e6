"""Allow ``python -m taint_preserver``."""

from taint_preserver.cli import app

if __name__ == "__main__":
    app()
