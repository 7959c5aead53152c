"""Rewrite catalogs, transformation generation and codemod application."""

from surfaceshift.transforms.catalog import RewriteAction, RewriteCatalog, RewriteRule, load_catalog, parse_catalog
from surfaceshift.transforms.codemod import CodemodReport, CodemodRunner, FileLockRegistry
from surfaceshift.transforms.generator import TransformationGenerator, generate, probe_idempotence, structural_paths

__all__ = [
    "RewriteAction",
    "RewriteCatalog",
    "RewriteRule",
    "load_catalog",
    "parse_catalog",
    "CodemodReport",
    "CodemodRunner",
    "FileLockRegistry",
    "TransformationGenerator",
    "generate",
    "probe_idempotence",
    "structural_paths",
]
