from .diagnostics import Diagnostic, Severity
from .dictionary import Dictionary
from .filesystem import FileSystem, TrackedFile
from .preprocessor import PreprocessResult, ShaderPreprocessor

__all__ = [
    'Diagnostic',
    'Dictionary',
    'FileSystem',
    'PreprocessResult',
    'Severity',
    'ShaderPreprocessor',
    'TrackedFile',
]
