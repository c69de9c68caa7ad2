import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .dictionary import Dictionary


class ConfigError(ValueError):
    pass


class ShaderJob:
    """One shader to preprocess and the file its output is written to."""

    def __init__(self, src: Path, dst: Path, dictionary: Dictionary,
                 dictionary_path: Optional[Path] = None):
        self.src = src
        self.dst = dst
        self.dictionary = dictionary
        self.dictionary_path = dictionary_path  # Set when the dictionary comes from a file

    def reload_dictionary(self) -> None:
        """Reloads the dictionary file in place so preprocessors holding it see the new values."""
        if self.dictionary_path is not None:
            self.dictionary.assign(Dictionary.from_yaml(str(self.dictionary_path)))

    def __repr__(self) -> str:
        return f"ShaderJob({str(self.src)!r} -> {str(self.dst)!r})"


class Config:
    def __init__(self, jobs: List[ShaderJob], include_paths: List[Path],
                 path_tokens: Dict[str, str]):
        self.jobs = jobs
        self.include_paths = include_paths
        self.path_tokens = path_tokens


def _resolve(base_path: Path, value: Any, what: str) -> Path:
    if not isinstance(value, str) or not value:
        raise ConfigError(f"'{what}' must be a non-empty path, got {value!r}")
    path = Path(os.path.expanduser(value))
    if not path.is_absolute():
        path = base_path / path
    return path


def _load_dictionary(base_path: Path, value: Any, what: str):
    """A dictionary is given either inline as a mapping or as a path to a YAML file."""
    if value is None:
        return Dictionary(), None
    if isinstance(value, dict):
        try:
            return Dictionary(value), None
        except TypeError as e:
            raise ConfigError(f"Invalid '{what}': {e}") from e
    path = _resolve(base_path, value, what)
    try:
        return Dictionary.from_yaml(str(path)), path
    except (OSError, TypeError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not load '{what}' from '{path}': {e}") from e


def parse_config(cfg: Any, base_path: Path) -> Config:
    """Builds a Config from already parsed YAML; relative paths start at base_path."""
    if not isinstance(cfg, dict):
        raise ConfigError("Configuration must be a mapping")

    include_paths = cfg.get('include_paths') or []
    if not isinstance(include_paths, list):
        raise ConfigError("'include_paths' must be a list")
    include_paths = [_resolve(base_path, p, 'include_paths') for p in include_paths]

    path_tokens = cfg.get('path_tokens') or {}
    if not isinstance(path_tokens, dict):
        raise ConfigError("'path_tokens' must be a mapping")
    path_tokens = {str(token): str(_resolve(base_path, path, f'path_tokens.{token}'))
                   for token, path in path_tokens.items()}

    default_dictionary, default_dictionary_path = _load_dictionary(
        base_path, cfg.get('dictionary'), 'dictionary')

    writes = cfg.get('write')
    if not isinstance(writes, list) or not writes:
        raise ConfigError("'write' must be a non-empty list of {src, dst} entries")

    jobs: List[ShaderJob] = []
    for index, to_write in enumerate(writes):
        if not isinstance(to_write, dict) or 'src' not in to_write or 'dst' not in to_write:
            raise ConfigError(f"Entry {index} of 'write' needs both 'src' and 'dst'")
        src = _resolve(base_path, to_write['src'], f'write[{index}].src')
        dst = _resolve(base_path, to_write['dst'], f'write[{index}].dst')
        if 'dictionary' in to_write:
            dictionary, dictionary_path = _load_dictionary(
                base_path, to_write['dictionary'], f'write[{index}].dictionary')
        else:
            dictionary, dictionary_path = default_dictionary, default_dictionary_path
        jobs.append(ShaderJob(src, dst, dictionary, dictionary_path))

    return Config(jobs, include_paths, path_tokens)


def load_config(path: str) -> Config:
    config_path = Path(path).resolve()
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            cfg = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Could not read configuration '{path}': {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in '{path}': {e}") from e
    return parse_config(cfg, config_path.parent)
