"""Data subpackage - bulk override import."""
from .import_overrides import ImportReport, load_overrides_csv, import_overrides

__all__ = ['ImportReport', 'load_overrides_csv', 'import_overrides']
