"""Manifest parsers — auto-registered on import.

Import order is the manifest scan order: npm lockfiles first, then Python.
"""

from depsentinel.engines.dependency_scanner.parsers import (  # isort: skip
    npm_lock,  # noqa: F401
    yarn_lock,  # noqa: F401
    pnpm_lock,  # noqa: F401
    pip_requirements,  # noqa: F401
    poetry_lock,  # noqa: F401
    pyproject_toml,  # noqa: F401
)
