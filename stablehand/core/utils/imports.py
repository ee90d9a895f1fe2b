"""
Module and job-class import utilities.

- import_module_path(): import using a dotted module path
- import_file_path(): import a standalone file under a stable synthetic name
- import_target(): dispatch between the two (CLI --import values)
- resolve_object(): find the class a job names ('pkg.mod.Klass' or 'pkg.mod:Klass')
- setup_sys_path_from_cwd(): add cwd to sys.path when it is a project root
"""

from __future__ import annotations

import hashlib
import importlib
import importlib.util
import os
import sys
from typing import Any

from stablehand.core.logging import get_logger

logger = get_logger('imports')


def find_project_root(start_dir: str) -> str | None:
    """
    Return start_dir if it contains pyproject.toml, setup.cfg, or setup.py.

    Does not traverse up, so a parent monorepo root is never picked up.
    """
    start_dir = os.path.abspath(start_dir)
    for marker in ('pyproject.toml', 'setup.cfg', 'setup.py'):
        if os.path.exists(os.path.join(start_dir, marker)):
            return start_dir
    return None


def setup_sys_path_from_cwd() -> str | None:
    """If cwd is a project root, add it to sys.path. Returns cwd when added."""
    cwd = os.getcwd()
    if find_project_root(cwd) and cwd not in sys.path:
        sys.path.insert(0, cwd)
        logger.debug(f'Added cwd to sys.path: {cwd}')
        return cwd
    return None


def import_module_path(module_path: str) -> Any:
    return importlib.import_module(module_path)


def _compute_synthetic_module_name(path: str) -> str:
    # Same realpath -> same name, in the supervisor and in every forked child.
    realpath = os.path.realpath(path)
    hash_prefix = hashlib.sha256(realpath.encode()).hexdigest()[:12]
    return f'stablehand._dynamic.{hash_prefix}'


def import_file_path(
    file_path: str,
    module_name: str | None = None,
    add_parent_to_path: bool = True,
) -> Any:
    """
    Import a module from a file path.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ImportError: If the module can't be loaded
    """
    file_path = os.path.realpath(file_path)

    if not os.path.exists(file_path):
        raise FileNotFoundError(f'Module file not found: {file_path}')

    for mod in list(sys.modules.values()):
        mod_file = getattr(mod, '__file__', None)
        if mod_file and os.path.realpath(mod_file) == file_path:
            return mod

    if add_parent_to_path:
        parent_dir = os.path.dirname(file_path)
        if parent_dir not in sys.path:
            sys.path.insert(0, parent_dir)

    if module_name is None:
        module_name = _compute_synthetic_module_name(file_path)

    spec = importlib.util.spec_from_file_location(module_name, file_path)
    if spec is None or spec.loader is None:
        raise ImportError(f'Could not load module from path: {file_path}')

    mod = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = mod
    spec.loader.exec_module(mod)
    return mod


def import_target(path: str) -> Any:
    if path.endswith('.py') or os.path.sep in path:
        return import_file_path(path)
    return import_module_path(path)


def resolve_object(qualified_name: str) -> Any:
    """
    Resolve 'pkg.module.Klass', 'pkg.module:Klass' or 'pkg.module:Outer.Inner'.

    Raises:
        ImportError: If no prefix of the name is an importable module
        AttributeError: If the module has no such attribute
    """
    if ':' in qualified_name:
        module_path, _, attr_path = qualified_name.partition(':')
        obj = import_module_path(module_path)
    else:
        module_path, _, attr_path = qualified_name.rpartition('.')
        if not module_path:
            raise ImportError(f'Not a qualified name: {qualified_name!r}')
        obj = import_module_path(module_path)

    for attr in attr_path.split('.'):
        obj = getattr(obj, attr)
    return obj
