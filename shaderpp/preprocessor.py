import logging
from typing import Callable, Dict, List, Optional, Set, Tuple

from .diagnostics import Diagnostic, Severity
from .dictionary import Dictionary
from .filesystem import FileSystem, TrackedFile

logger = logging.getLogger(__name__)

INCLUDE = '#include'
FOR = '#for'
END_FOR = '#endfor'
IN = 'in'

# Key index of a loop over a dictionary without keys
EMPTY_LOOP = -1


def _is_string(text: str) -> bool:
    """Returns whether text is a quoted literal such as "red"."""
    return len(text) > 1 and text[0] == '"' and text[-1] == '"'


def _trim(line: str) -> Tuple[str, str]:
    """Splits a line into its leading whitespace and its trimmed content."""
    content = line.lstrip()
    indentation = line[:len(line) - len(content)]
    return indentation, content.rstrip()


def _match_directive(line: str, directive: str) -> Optional[str]:
    """
    Returns the text following directive if line starts with it, otherwise None.
    '#format' does not match '#for'.
    """
    if not line.startswith(directive):
        return None
    rest = line[len(directive):]
    if rest and (rest[0].isalnum() or rest[0] == '_'):
        return None
    return rest


class Input:
    """One open source file on the include stack."""

    def __init__(self, path: str, lines: List[str], indentation: str):
        self.path = path
        self.lines = lines
        self.indentation = indentation
        self.line_number = 0  # Lines read so far; also the index of the next line

    def read_line(self) -> Optional[str]:
        if self.line_number >= len(self.lines):
            return None
        line = self.lines[self.line_number]
        self.line_number += 1
        return line

    def rewind(self, line_number: int) -> None:
        self.line_number = line_number


class ForStatement:
    """Bookkeeping of one open #for loop across all of its iterations."""

    def __init__(self, input_index: int, line_number: int, key_name: str,
                 value_name: str, dictionary_ref: str, key_index: int):
        self.input_index = input_index
        self.line_number = line_number  # Line of the #for; the body starts right after it
        self.key_name = key_name
        self.value_name = value_name
        self.dictionary_ref = dictionary_ref
        self.key_index = key_index


class Env:
    """State of a single preprocessing run."""

    def __init__(self):
        self.inputs: List[Input] = []
        self.scopes: List[Set[str]] = []
        self.aliases: Dict[str, List[str]] = {}
        self.for_statements: List[ForStatement] = []
        self.output: List[str] = []
        self.line: str = ''
        self.indentation: str = ''
        self.success: bool = True
        self.diagnostics: List[Diagnostic] = []

    def write(self, text: str) -> None:
        self.output.append(text + '\n')


class PreprocessResult:
    """Outcome of ShaderPreprocessor.process. Output is empty unless success is set."""

    def __init__(self, output: str, success: bool, diagnostics: List[Diagnostic]):
        self.output = output
        self.success = success
        self.diagnostics = diagnostics

    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.ERROR]

    def __bool__(self) -> bool:
        return self.success

    def __repr__(self) -> str:
        return f"PreprocessResult(success={self.success}, diagnostics={self.diagnostics!r})"


class ShaderPreprocessor:
    """
    Shader Preprocessor
    Flattens a shader source file into a single text ready for compilation.

    Features:
    - #include "relative/path" searched next to the including file, then in the include paths
    - #include <absolute/path>, with ${TOKEN} path tokens expanded by the file system
    - #for <key>, <value> in <dictionary> ... #endfor over the keys of a nested dictionary
    - #{name} substitution of string values, loop keys and loop values
    - #line markers whenever an include boundary is crossed
    - Change tracking of every included file, reported through a callback
    """

    def __init__(self, shader_path: str, dictionary: Optional[Dictionary] = None,
                 include_paths: Tuple[str, ...] = (), file_system: Optional[FileSystem] = None):
        self._owns_file_system = file_system is None
        self._file_system = file_system if file_system is not None else FileSystem()
        self._shader_path = shader_path
        self._dictionary = dictionary if dictionary is not None else Dictionary()
        self._include_paths: List[str] = []
        self._tracked_files: Dict[str, TrackedFile] = {}
        self._callback: Optional[Callable[['ShaderPreprocessor'], None]] = None
        for path in include_paths:
            self.add_include_path(path)

    # --- Configuration ---

    @property
    def shader_path(self) -> str:
        return self._shader_path

    @shader_path.setter
    def shader_path(self, shader_path: str) -> None:
        self._shader_path = shader_path
        self._notify_changed()

    @property
    def dictionary(self) -> Dictionary:
        return self._dictionary

    @dictionary.setter
    def dictionary(self, dictionary: Dictionary) -> None:
        self._dictionary = dictionary
        self._notify_changed()

    @property
    def include_paths(self) -> Tuple[str, ...]:
        return tuple(self._include_paths)

    def add_include_path(self, path: str) -> bool:
        """Appends a directory to the search paths of quoted includes."""
        try:
            resolved = self._file_system.abs_path(path)
        except (KeyError, ValueError) as e:
            logger.warning("Could not resolve include path '%s': %s", path, e)
            return False
        if not self._file_system.is_directory(resolved):
            logger.warning("Include path '%s' is not a directory", path)
            return False
        if resolved not in self._include_paths:
            self._include_paths.append(resolved)
        return True

    def set_callback(self, callback: Optional[Callable[['ShaderPreprocessor'], None]]) -> None:
        """
        Sets the function called when a tracked file, the shader path or the
        dictionary changes. File changes arrive on the observer thread, so the
        callback should only schedule a new run, never call process itself.
        """
        self._callback = callback

    def included_files(self) -> List[str]:
        """Returns the files tracked by the last run in the order they were included."""
        return list(self._tracked_files.keys())

    def close(self) -> None:
        self._clear_tracked_paths()
        if self._owns_file_system:
            self._file_system.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    # --- Processing ---

    def process(self) -> PreprocessResult:
        """Expands the shader file. Errors are reported in the result, never raised."""
        env = Env()
        self._clear_tracked_paths()

        try:
            root = self._file_system.abs_path(self._shader_path)
        except (KeyError, ValueError) as e:
            self._error(env, f"Could not resolve shader path '{self._shader_path}'. {e}")
            return self._result(env)

        logger.debug("Processing %s", root)
        if self._include_file(root, env):
            while env.inputs and env.success:
                if not self._parse_line(env):
                    self._close_input(env)

        if env.success and env.for_statements:
            self._error(env, "Parse error. Unexpected end of file. "
                             "In the middle of expanding #for statement.")
        if env.success and env.scopes:
            self._error(env, "Parse error. Unexpected end of file.")

        return self._result(env)

    def _result(self, env: Env) -> PreprocessResult:
        output = ''.join(env.output) if env.success else ''
        return PreprocessResult(output, env.success, env.diagnostics)

    def _include_file(self, path: str, env: Env) -> bool:
        """Opens path and pushes it onto the input stack."""
        if any(current.path == path for current in env.inputs):
            self._error(env, f"Parse error. Circular include of '{path}'.")
            return False

        self._track_path(path)
        try:
            with self._file_system.open(path) as stream:
                lines = [line.rstrip('\n') for line in stream]
        except (OSError, UnicodeDecodeError) as e:
            self._error(env, f"Could not open file '{path}'. {e}")
            return False

        indentation = ''
        if env.inputs:
            indentation = env.inputs[-1].indentation + env.indentation
        env.inputs.append(Input(path, lines, indentation))
        logger.debug("Included %s", path)
        self._add_line_number(env)
        return True

    def _close_input(self, env: Env) -> None:
        """Pops an exhausted input, refusing to do so while one of its loops is open."""
        if env.for_statements:
            for_statement = env.for_statements[-1]
            if for_statement.input_index >= len(env.inputs) - 1:
                for_input = env.inputs[for_statement.input_index]
                self._error(env,
                            f"Parse error. Unexpected end of file. Still processing #for loop "
                            f"from {for_input.path}:{for_statement.line_number}.",
                            path=for_input.path, line=for_statement.line_number)
                return

        env.inputs.pop()
        if env.inputs:
            self._add_line_number(env)

    def _add_line_number(self, env: Env) -> None:
        current = env.inputs[-1]
        filename = self._file_system.filename_of(current.path)
        env.write(f'#line {current.line_number} "{filename}"')

    def _parse_line(self, env: Env) -> bool:
        """
        Processes the next line of the current input.
        Returns False once the input is exhausted.
        """
        current = env.inputs[-1]
        line = current.read_line()
        if line is None:
            return False

        env.indentation, env.line = _trim(line)

        if self._parse_end_for(env):  # #endfor
            return True

        if self._is_inside_empty_for_statement(env):
            self._skip_line(env)
            return True

        # Replace all #{} strings with data from the dictionary
        if not self._substitute_line(env):
            return True

        if self._parse_include(env) or self._parse_for(env):  # #include, #for
            return True

        env.write(current.indentation + env.indentation + env.line)
        return True

    def _is_inside_empty_for_statement(self, env: Env) -> bool:
        return bool(env.for_statements) and env.for_statements[-1].key_index == EMPTY_LOOP

    def _skip_line(self, env: Env) -> None:
        """
        Drops a line of a loop body that has no iterations. Loops nested in the
        skipped body are opened as empty loops so their #endfor pairs up.
        """
        rest = _match_directive(env.line, FOR)
        if rest is None:
            return
        current = env.inputs[-1]
        self._push_scope({}, env)
        env.for_statements.append(ForStatement(
            len(env.inputs) - 1, current.line_number, '', '', rest.strip(), EMPTY_LOOP))

    # --- Substitution ---

    def _substitute_line(self, env: Env) -> bool:
        """Replaces every #{name} in the current line. Substituted text is not rescanned."""
        line = env.line
        processed: List[str] = []
        while True:
            begin = line.find('#{')
            if begin == -1:
                break
            end = line.find('}', begin + 2)
            if end == -1:
                self._error(env, "Parse error. Expected '}' to close '#{'.")
                return False

            value = self._substitute(line[begin + 2:end], env)
            if value is None:
                return False
            processed.append(line[:begin])
            processed.append(value)
            line = line[end + 1:]

        processed.append(line)
        env.line = ''.join(processed)
        return True

    def _resolve_alias(self, name: str, env: Env) -> Tuple[bool, str]:
        """
        Replaces the part of name before the first '.' with its innermost alias
        binding, if it has one. Returns whether the result is a quoted literal or
        an existing dictionary key, together with the result.
        """
        head, dot, tail = name.partition('.')
        rest = dot + tail
        bindings = env.aliases.get(head)
        if bindings:
            head = bindings[-1]
        resolved = head + rest
        found = (not rest and _is_string(head)) or self._dictionary.has_key(resolved)
        return found, resolved

    def _substitute(self, name: str, env: Env) -> Optional[str]:
        found, resolved = self._resolve_alias(name, env)
        if not found:
            self._error(env, f"Substitution error. Could not resolve variable '{name}'.")
            return None

        if _is_string(resolved):
            return resolved[1:-1]
        if self._dictionary.has_value(resolved, str):
            return self._dictionary.get_value(resolved, str)

        type_name = self._dictionary.value_type(resolved).__name__
        self._error(env, f"Substitution error. '{name}' was resolved to '{resolved}' "
                         f"which is of type '{type_name}', not a string.")
        return None

    # --- Scopes ---

    def _push_scope(self, bindings: Dict[str, str], env: Env) -> None:
        scope: Set[str] = set()
        for name, value in bindings.items():
            scope.add(name)
            env.aliases.setdefault(name, []).append(value)
        env.scopes.append(scope)

    def _pop_scope(self, env: Env) -> bool:
        if not env.scopes:
            return False
        scope = env.scopes.pop()
        for name in scope:
            bindings = env.aliases.get(name)
            if not bindings:
                return False
            bindings.pop()
            if not bindings:
                del env.aliases[name]
        return True

    # --- Directives ---

    def _parse_include(self, env: Env) -> bool:
        rest = _match_directive(env.line, INCLUDE)
        if rest is None:
            return False

        rest = rest.strip()
        if not rest:
            self._error(env, "Parse error. Expected file path.")
            return True

        if rest[0] == '"':
            end = rest.find('"', 1)
            if end == -1:
                self._error(env, 'Parse error. Expected ".')
                return True
            self._include_relative(rest[1:end], env)
        elif rest[0] == '<':
            end = rest.find('>', 1)
            if end == -1:
                self._error(env, "Parse error. Expected >.")
                return True
            self._include_absolute(rest[1:end], env)
        else:
            self._error(env, 'Parse error. Expected " or <.')
            return True

        trailing = rest[end + 1:].strip()
        if trailing and env.success:
            # The include has been pushed already; report against the including file
            parent = env.inputs[-2] if len(env.inputs) > 1 else env.inputs[-1]
            self._warning(env, f"Ignoring text after include path: '{trailing}'.",
                          path=parent.path, line=parent.line_number)
        return True

    def _include_relative(self, relative: str, env: Env) -> None:
        """Resolves a quoted include against the including file, then the include paths."""
        separator = self._file_system.PATH_SEPARATOR
        directory = self._file_system.directory_of(env.inputs[-1].path)
        for base in [directory] + self._include_paths:
            candidate = self._file_system.normalize(base + separator + relative)
            if self._file_system.exists(candidate):
                self._include_file(candidate, env)
                return

        self._error(env, f"Could not resolve file path for include file '{relative}'.")

    def _include_absolute(self, path: str, env: Env) -> None:
        try:
            resolved = self._file_system.abs_path(path)
        except (KeyError, ValueError) as e:
            self._error(env, f"Could not resolve file path for include file '{path}'. {e}")
            return
        if not self._file_system.exists(resolved):
            self._error(env, f"Could not resolve file path for include file '{path}'.")
            return
        self._include_file(resolved, env)

    def _tokenize_for(self, rest: str, env: Env) -> Optional[Tuple[str, str, str]]:
        """
        Splits the text after '#for' into key name, value name and dictionary name:
        #for <key>, <value> in <dictionary>
        """
        key_part, comma, value_part = rest.partition(',')
        key_name = key_part.strip()
        if not comma or len(key_name.split()) != 1:
            self._error(env, "Parse error. Expected '<key>,' in #for statement.")
            return None

        words = value_part.split(None, 2)
        if not words or words[0] == IN:
            self._error(env, "Parse error. Expected value name in #for statement.")
            return None
        if len(words) < 2 or words[1] != IN:
            self._error(env, "Parse error. Expected 'in' in #for statement.")
            return None
        if len(words) < 3:
            self._error(env, "Parse error. Expected dictionary after 'in' in #for statement.")
            return None

        value_name = words[0]
        dictionary_name = words[2].strip()
        if key_name == value_name:
            self._error(env, f"Parse error. Key and value of #for statement are both named '{key_name}'.")
            return None
        return key_name, value_name, dictionary_name

    def _parse_for(self, env: Env) -> bool:
        rest = _match_directive(env.line, FOR)
        if rest is None:
            return False

        tokens = self._tokenize_for(rest, env)
        if tokens is None:
            return True
        key_name, value_name, dictionary_name = tokens

        # The dictionary name can be an alias; resolve the real dictionary reference
        found, dictionary_ref = self._resolve_alias(dictionary_name, env)
        if not found:
            self._error(env, f"Substitution error. Could not resolve variable '{dictionary_name}'.")
            return True
        if not self._dictionary.has_value(dictionary_ref, Dictionary):
            self._error(env, f"Substitution error. '{dictionary_name}' was resolved to "
                             f"'{dictionary_ref}' which is not a dictionary.")
            return True

        keys = self._dictionary.keys(dictionary_ref)
        bindings: Dict[str, str] = {}
        if keys:
            bindings[key_name] = f'"{keys[0]}"'
            bindings[value_name] = f"{dictionary_ref}.{keys[0]}"
            key_index = 0
            env.write(f"//# For loop over {dictionary_ref}")
            env.write(f"//# Key {keys[0]} in {dictionary_ref}")
        else:
            key_index = EMPTY_LOOP
            env.write("//# Empty for loop")
        self._push_scope(bindings, env)

        current = env.inputs[-1]
        env.for_statements.append(ForStatement(
            len(env.inputs) - 1, current.line_number,
            key_name, value_name, dictionary_ref, key_index))
        return True

    def _parse_end_for(self, env: Env) -> bool:
        if _match_directive(env.line, END_FOR) is None:
            return False

        if not env.for_statements:
            self._error(env, "Parse error. Unexpected #endfor. No corresponding #for was found.")
            return True

        for_statement = env.for_statements[-1]
        # #for and #endfor have to be in the same input file
        if for_statement.input_index != len(env.inputs) - 1:
            for_input = env.inputs[for_statement.input_index]
            self._error(env, f"Parse error. Unexpected #endfor. Last seen #for was in "
                             f"{for_input.path}:{for_statement.line_number}.")
            return True

        if not self._pop_scope(env):
            self._error(env, "Preprocessor internal error. Failed to pop scope from stack.")
            return True

        keys: List[str] = []
        if for_statement.key_index != EMPTY_LOOP:
            for_statement.key_index += 1
            keys = self._dictionary.keys(for_statement.dictionary_ref)

        if for_statement.key_index != EMPTY_LOOP and for_statement.key_index < len(keys):
            key = keys[for_statement.key_index]
            self._push_scope({
                for_statement.key_name: f'"{key}"',
                for_statement.value_name: f"{for_statement.dictionary_ref}.{key}",
            }, env)
            env.write(f"//# Key {key} in {for_statement.dictionary_ref}")

            # Restore the input to where it was right after the #for
            env.inputs[-1].rewind(for_statement.line_number)
        else:
            # Last iteration done, or there were no iterations at all
            env.for_statements.pop()
            if not self._is_inside_empty_for_statement(env):
                env.write(f"//# Terminated loop over {for_statement.dictionary_ref}")
        return True

    # --- Change tracking ---

    def _track_path(self, path: str) -> None:
        if path in self._tracked_files:
            return
        self._tracked_files[path] = self._file_system.watch(path, self._on_file_changed)

    def _clear_tracked_paths(self) -> None:
        for tracked in self._tracked_files.values():
            tracked.release()
        self._tracked_files = {}

    def _on_file_changed(self, path: str) -> None:
        logger.debug("Detected modification in: %s", path)
        self._notify_changed()

    def _notify_changed(self) -> None:
        if self._callback is not None:
            self._callback(self)

    # --- Diagnostics ---

    def _report(self, env: Env, severity: Severity, message: str,
                path: Optional[str], line: Optional[int]) -> Diagnostic:
        if path is None:
            if env.inputs:
                path = env.inputs[-1].path
                line = env.inputs[-1].line_number
            else:
                path = self._shader_path
        diagnostic = Diagnostic(severity, path, line or 0, message)
        env.diagnostics.append(diagnostic)
        logger.log(severity.value, "%s", diagnostic)
        return diagnostic

    def _error(self, env: Env, message: str, path: Optional[str] = None,
               line: Optional[int] = None) -> None:
        self._report(env, Severity.ERROR, message, path, line)
        env.success = False

    def _warning(self, env: Env, message: str, path: Optional[str] = None,
                 line: Optional[int] = None) -> None:
        self._report(env, Severity.WARNING, message, path, line)
