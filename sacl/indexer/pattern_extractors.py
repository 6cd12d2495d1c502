"""Regex and generic-pattern extraction strategies.

Used for languages without an AST grammar and as the fallback when a
tree-sitter parse is rejected. Patterns work line by line, so a single
malformed line never hides the rest of the file.
"""

import logging
import os
import re
from typing import List, Optional, Tuple

from .grammars import CAPABILITY_GENERIC, CAPABILITY_REGEX, LanguageConfig
from .models import CallType, DependencyType, ExportType, ImportType, InheritanceType
from .relationship_extractors import ExtractionResult, ExtractionState, LanguageExtractor
from .text_features import (
    heuristic_structural_features,
    heuristic_textual_features,
    is_node_builtin,
    is_python_builtin,
    resolve_python_module,
    resolve_relative_path,
)

logger = logging.getLogger(__name__)

CALL_KEYWORDS = frozenset(
    [
        "if", "elif", "for", "while", "switch", "catch", "return", "function", "def", "class",
        "print", "super", "typeof", "with", "except", "and", "or", "not", "in", "lambda",
        "sizeof", "await", "new", "import", "require",
    ]
)


def _split_names(text: str) -> List[str]:
    return [part.strip() for part in text.strip().strip("()").split(",") if part.strip()]


class PythonRegexExtractor(LanguageExtractor):
    """Python extraction from line patterns."""

    capability = CAPABILITY_REGEX

    IMPORT = re.compile(r"^import\s+(.+)")
    FROM_IMPORT = re.compile(r"^from\s+(\S+)\s+import\s+(.+)")
    CLASS = re.compile(r"^class\s+(\w+)\s*(?:\(([^)]*)\))?\s*:")
    DEF = re.compile(r"^(?:async\s+)?def\s+(\w+)")
    CALL = re.compile(r"(await\s+)?(?:([A-Za-z_][\w.]*)\.)?([A-Za-z_]\w*)\s*\(")

    def extract(self, content: str, file_path: str, language: LanguageConfig) -> ExtractionResult:
        state = ExtractionState(file_path, content, language)
        state.textual = heuristic_textual_features(content, language.keywords, python_style=True)
        state.structural = heuristic_structural_features(content, python_style=True)

        functions: List[Tuple[int, str]] = []  # (indent, name) of enclosing defs
        pending: Optional[Tuple[str, List[str], int]] = None  # open "from x import ("
        for index, raw in enumerate(state.lines):
            line = raw.strip()
            if pending is not None:
                module, parts, start = pending
                part = line.split("#")[0]
                parts.append(part)
                if ")" in part:
                    self._from_import(module, " ".join(parts), start, state)
                    pending = None
                continue
            if not line or line.startswith("#"):
                continue
            line_number = index + 1
            indent = len(raw) - len(raw.lstrip())
            while functions and functions[-1][0] >= indent:
                functions.pop()

            def_match = self.DEF.match(line)
            class_match = self.CLASS.match(line)
            if def_match:
                name = def_match.group(1)
                if indent == 0 and not name.startswith("_"):
                    state.add_export(name, ExportType.NAMED, line_number)
                functions.append((indent, name))
                continue
            if class_match:
                self._class(class_match, indent, line_number, state)
                continue

            import_match = self.IMPORT.match(line)
            from_match = self.FROM_IMPORT.match(line)
            if import_match:
                for item in _split_names(import_match.group(1)):
                    module, _, alias = item.partition(" as ")
                    module = module.strip()
                    dependency_type = (
                        DependencyType.BUILTIN if is_python_builtin(module) else DependencyType.NPM
                    )
                    state.add_import(
                        module, [alias.strip() or module], ImportType.NAMESPACE,
                        line_number, dependency_type,
                    )
                continue
            if from_match:
                names = from_match.group(2).split("#")[0].strip()
                if names.startswith("(") and ")" not in names:
                    pending = (from_match.group(1), [names], line_number)
                    continue
                self._from_import(from_match.group(1), names, line_number, state)
                continue

            context = functions[-1][1] if functions else "global"
            for call in self.CALL.finditer(line):
                self._call(call, line_number, context, state)

        return state.finish(self.capability)

    def _class(self, match, indent: int, line_number: int, state: ExtractionState) -> None:
        class_name = match.group(1)
        if indent == 0 and not class_name.startswith("_"):
            state.add_export(class_name, ExportType.NAMED, line_number)
        for parent in _split_names(match.group(2) or ""):
            if "=" in parent:
                continue
            kind = InheritanceType.MIXIN if parent.endswith("Mixin") else InheritanceType.EXTENDS
            state.add_inheritance(class_name, parent, kind, line_number)

    def _from_import(self, module: str, names: str, line_number: int, state: ExtractionState) -> None:
        if names.strip() == "*":
            symbols, import_type = ["*"], ImportType.NAMESPACE
        else:
            symbols = [name.partition(" as ")[0].strip() for name in _split_names(names)]
            import_type = ImportType.NAMED

        resolved = resolve_python_module(module, state.file_path)
        if resolved is not None:
            state.add_import(resolved, symbols, import_type, line_number, DependencyType.LOCAL)
        else:
            dependency_type = DependencyType.BUILTIN if is_python_builtin(module) else DependencyType.NPM
            state.add_import(module, symbols, import_type, line_number, dependency_type)

    def _call(self, match, line_number: int, context: str, state: ExtractionState) -> None:
        awaited, obj, name = match.groups()
        if name in CALL_KEYWORDS or name in state.language.keywords:
            return
        if awaited:
            call_type = CallType.ASYNC
        elif name[0].isupper():
            call_type = CallType.CONSTRUCTOR
        elif obj:
            call_type = CallType.METHOD
        else:
            call_type = CallType.DIRECT
        state.add_call(name, call_type, line_number, context, obj)


class JavaScriptRegexExtractor(LanguageExtractor):
    """JavaScript/TypeScript extraction from line patterns."""

    capability = CAPABILITY_REGEX

    IMPORT_FROM = re.compile(r"^import\s+(?:type\s+)?(.+?)\s+from\s+['\"]([^'\"]+)['\"]")
    IMPORT_BARE = re.compile(r"^import\s+['\"]([^'\"]+)['\"]")
    DYNAMIC = re.compile(r"\b(?:require|import)\s*\(\s*['\"]([^'\"]+)['\"]\s*\)")
    EXPORT_DEFAULT = re.compile(
        r"^export\s+default\s+(?:abstract\s+)?(?:(?:async\s+)?function\*?|class)?\s*([A-Za-z_$][\w$]*)?"
    )
    EXPORT_DECLARATION = re.compile(
        r"^export\s+(?:declare\s+)?(?:abstract\s+)?(?:async\s+)?"
        r"(?:function\*?|class|const|let|var|interface|type|enum)\s+([A-Za-z_$][\w$]*)"
    )
    EXPORT_LIST = re.compile(r"^export\s*(?:type\s*)?\{([^}]*)\}(?:\s*from\s*['\"]([^'\"]+)['\"])?")
    EXPORT_ALL = re.compile(r"^export\s*\*\s*(?:as\s+([\w$]+)\s*)?from\s*['\"]([^'\"]+)['\"]")
    MODULE_EXPORTS = re.compile(r"^module\.exports\s*=\s*([A-Za-z_$][\w$]*)?")
    NAMED_EXPORTS = re.compile(r"^(?:module\.)?exports\.([A-Za-z_$][\w$]*)\s*=")
    CLASS = re.compile(
        r"\bclass\s+([A-Za-z_$][\w$]*)(?:<[^>]*>)?"
        r"(?:\s+extends\s+([\w$.]+)(?:<[^>]*>)?)?"
        r"(?:\s+implements\s+([\w$.,\s<>]+?))?\s*\{"
    )
    FUNCTION_DECL = re.compile(
        r"(?:function\*?\s+([A-Za-z_$][\w$]*)\s*\("
        r"|(?:const|let|var)\s+([A-Za-z_$][\w$]*)\s*=\s*(?:async\s+)?(?:function\b|\([^)]*\)\s*=>|[\w$]+\s*=>)"
        r"|^(?:(?:public|private|protected|static|async|get|set)\s+)*([A-Za-z_$][\w$]*)\s*\([^)]*\)\s*\{)"
    )
    NEW = re.compile(r"\bnew\s+([\w$.]+)\s*\(")
    CALL = re.compile(r"(await\s+)?(?:([A-Za-z_$][\w$.]*)\.)?([A-Za-z_$][\w$]*)\s*\(")

    def extract(self, content: str, file_path: str, language: LanguageConfig) -> ExtractionResult:
        state = ExtractionState(file_path, content, language)
        state.textual = heuristic_textual_features(content, language.keywords)
        state.structural = heuristic_structural_features(content)

        depth = 0
        functions: List[Tuple[int, str]] = []  # (brace depth at declaration, name)
        for index, raw in enumerate(state.lines):
            line = raw.strip()
            if not line or line.startswith("//") or line.startswith("*") or line.startswith("/*"):
                continue
            line_number = index + 1

            if line.startswith("import"):
                self._import(line, line_number, state)
            elif line.startswith("export") or line.startswith("module.exports") or line.startswith(
                "exports."
            ):
                self._export(line, line_number, state)

            class_match = self.CLASS.search(line)
            if class_match:
                self._class(class_match, line_number, state)

            declared = self.FUNCTION_DECL.search(line)
            declared_name = None
            if declared and not class_match:
                declared_name = next((g for g in declared.groups() if g), None)
                if declared_name in CALL_KEYWORDS:
                    declared_name = None

            context = functions[-1][1] if functions else "global"
            if not line.startswith("import"):
                self._calls(line, line_number, declared_name or context, declared_name, state)

            if declared_name:
                functions.append((depth, declared_name))
            depth += line.count("{") - line.count("}")
            while functions and depth <= functions[-1][0] and ("}" in line or "{" not in line):
                functions.pop()

        return state.finish(self.capability)

    def _add_module_import(
        self, source: str, symbols: List[str], import_type: ImportType, line_number: int,
        state: ExtractionState,
    ) -> None:
        target = resolve_relative_path(source, state.file_path)
        if target != source:
            dependency_type = DependencyType.LOCAL
        elif is_node_builtin(source):
            dependency_type = DependencyType.BUILTIN
        else:
            dependency_type = DependencyType.NPM
        state.add_import(target, symbols, import_type, line_number, dependency_type)

    def _import(self, line: str, line_number: int, state: ExtractionState) -> None:
        match = self.IMPORT_FROM.match(line)
        if match:
            clause, source = match.groups()
            symbols: List[str] = []
            import_type = ImportType.NAMED
            named = re.search(r"\{([^}]*)\}", clause)
            if named:
                for item in _split_names(named.group(1)):
                    symbols.append(item.partition(" as ")[0].replace("type ", "").strip())
                clause = clause.replace(named.group(0), "")
            namespace = re.search(r"\*\s+as\s+([\w$]+)", clause)
            if namespace:
                symbols.append(namespace.group(1))
                import_type = ImportType.NAMESPACE
                clause = clause.replace(namespace.group(0), "")
            default = clause.strip().strip(",").strip()
            if default:
                symbols.insert(0, default)
                import_type = ImportType.DEFAULT
            self._add_module_import(source, symbols, import_type, line_number, state)
            return

        bare = self.IMPORT_BARE.match(line)
        if bare:
            self._add_module_import(bare.group(1), [], ImportType.NAMED, line_number, state)

    def _export(self, line: str, line_number: int, state: ExtractionState) -> None:
        match = self.EXPORT_ALL.match(line)
        if match:
            alias, source = match.groups()
            state.add_export(alias or "*", ExportType.NAMESPACE, line_number)
            self._add_module_import(source, ["*"], ImportType.NAMESPACE, line_number, state)
            return
        match = self.EXPORT_LIST.match(line)
        if match:
            names, source = match.groups()
            symbols = []
            for item in _split_names(names):
                local, _, alias = item.partition(" as ")
                symbols.append((alias or local).strip())
            for symbol in symbols:
                state.add_export(symbol, ExportType.NAMED, line_number)
            if source:
                self._add_module_import(source, symbols, ImportType.NAMED, line_number, state)
            return
        match = self.EXPORT_DEFAULT.match(line)
        if match:
            state.add_export(match.group(1) or "default", ExportType.DEFAULT, line_number)
            return
        match = self.EXPORT_DECLARATION.match(line)
        if match:
            state.add_export(match.group(1), ExportType.NAMED, line_number)
            return
        match = self.NAMED_EXPORTS.match(line)
        if match:
            state.add_export(match.group(1), ExportType.NAMED, line_number)
            return
        match = self.MODULE_EXPORTS.match(line)
        if match:
            state.add_export(match.group(1) or "default", ExportType.DEFAULT, line_number)

    def _class(self, match, line_number: int, state: ExtractionState) -> None:
        class_name, parent, interfaces = match.groups()
        if parent:
            state.add_inheritance(class_name, parent, InheritanceType.EXTENDS, line_number)
        for iface in _split_names(re.sub(r"<[^>]*>", "", interfaces or "")):
            state.add_inheritance(class_name, iface, InheritanceType.IMPLEMENTS, line_number)

    def _calls(
        self, line: str, line_number: int, context: str, declared: Optional[str],
        state: ExtractionState,
    ) -> None:
        for dynamic in self.DYNAMIC.finditer(line):
            self._add_module_import(dynamic.group(1), [], ImportType.DYNAMIC, line_number, state)

        constructed = set()
        for match in self.NEW.finditer(line):
            target = match.group(1)
            obj, _, name = target.rpartition(".")
            constructed.add(match.start(1))
            state.add_call(name, CallType.CONSTRUCTOR, line_number, context, obj or None)

        for match in self.CALL.finditer(line):
            awaited, obj, name = match.groups()
            start = match.start(2) if obj else match.start(3)
            if start in constructed or name == declared:
                continue
            if name in CALL_KEYWORDS or name in state.language.keywords:
                continue
            if awaited:
                call_type = CallType.ASYNC
            elif obj:
                call_type = CallType.METHOD
            else:
                call_type = CallType.DIRECT
            state.add_call(name, call_type, line_number, context, obj)


class GenericPatternExtractor(LanguageExtractor):
    """Dependency and inheritance patterns for languages without a dedicated strategy."""

    capability = CAPABILITY_GENERIC

    INCLUDE = re.compile(r"^#include\s*([<\"])([^>\"]+)[>\"]")
    JAVA_IMPORT = re.compile(r"^import\s+(?:static\s+)?([\w.]+?)(?:\.\*)?\s*;")
    CSHARP_USING = re.compile(r"^using\s+(?:static\s+)?([\w.]+)\s*;")
    GO_IMPORT = re.compile(r"^import\s+(?:\w+\s+)?\"([^\"]+)\"")
    GO_BLOCK_ITEM = re.compile(r"^(?:\w+\s+)?\"([^\"]+)\"")
    RUST_USE = re.compile(r"^(?:pub\s+)?use\s+([\w:]+)")
    CPP_CLASS = re.compile(r"\b(?:class|struct)\s+(\w+)\s*:\s*(?:public|protected|private)?\s*(\w+)")
    JAVA_EXTENDS = re.compile(r"\bclass\s+(\w+)(?:<[^>]*>)?\s+extends\s+(\w+)")
    JAVA_IMPLEMENTS = re.compile(r"\bclass\s+(\w+)(?:<[^>]*>)?.*?\bimplements\s+([\w\s,<>]+?)\s*\{?$")
    CSHARP_CLASS = re.compile(r"\bclass\s+(\w+)(?:<[^>]*>)?\s*:\s*([\w\s,<>.]+?)\s*(?:where\b|\{|$)")

    def extract(self, content: str, file_path: str, language: LanguageConfig) -> ExtractionResult:
        state = ExtractionState(file_path, content, language)
        state.textual = heuristic_textual_features(content, language.keywords)
        state.structural = heuristic_structural_features(content)

        in_go_block = False
        for index, raw in enumerate(state.lines):
            line = raw.strip()
            if not line or line.startswith("//"):
                continue
            line_number = index + 1

            if language.name == "go":
                if line.startswith("import ("):
                    in_go_block = True
                    continue
                if in_go_block:
                    if line.startswith(")"):
                        in_go_block = False
                        continue
                    item = self.GO_BLOCK_ITEM.match(line)
                    if item:
                        self._go_dependency(item.group(1), state)
                    continue

            self._dependencies(line, state)
            self._inheritance(line, line_number, state)

        return state.finish(self.capability)

    def _dependencies(self, line: str, state: ExtractionState) -> None:
        match = self.INCLUDE.match(line)
        if match:
            bracket, header = match.groups()
            if bracket == '"':
                target = os.path.normpath(os.path.join(os.path.dirname(state.file_path), header))
                state.add_dependency(target, DependencyType.LOCAL, ["include"])
            else:
                state.add_dependency(header, DependencyType.BUILTIN, ["include"])
            return

        match = self.JAVA_IMPORT.match(line)
        if match and state.language.name == "java":
            module = match.group(1)
            builtin = module.startswith("java.") or module.startswith("javax.")
            state.add_dependency(
                module, DependencyType.BUILTIN if builtin else DependencyType.NPM, ["import"]
            )
            return

        match = self.CSHARP_USING.match(line)
        if match:
            namespace = match.group(1)
            builtin = namespace == "System" or namespace.startswith("System.")
            state.add_dependency(
                namespace, DependencyType.BUILTIN if builtin else DependencyType.NPM, ["using"]
            )
            return

        match = self.GO_IMPORT.match(line)
        if match:
            self._go_dependency(match.group(1), state)
            return

        match = self.RUST_USE.match(line)
        if match:
            path = match.group(1)
            root = path.split("::")[0]
            if root in ("std", "core", "alloc"):
                dependency_type = DependencyType.BUILTIN
            elif root in ("crate", "self", "super"):
                dependency_type = DependencyType.LOCAL
            else:
                dependency_type = DependencyType.NPM
            state.add_dependency(path, dependency_type, ["use"])

    def _go_dependency(self, package: str, state: ExtractionState) -> None:
        builtin = "." not in package.split("/")[0]
        state.add_dependency(
            package, DependencyType.BUILTIN if builtin else DependencyType.NPM, ["import"]
        )

    def _inheritance(self, line: str, line_number: int, state: ExtractionState) -> None:
        name = state.language.name
        if name == "c_sharp":
            match = self.CSHARP_CLASS.search(line)
            if match:
                for base in _split_names(re.sub(r"<[^>]*>", "", match.group(2))):
                    # Convention: IName is an interface
                    is_interface = base.startswith("I") and len(base) > 1 and base[1].isupper()
                    kind = InheritanceType.IMPLEMENTS if is_interface else InheritanceType.EXTENDS
                    state.add_inheritance(match.group(1), base, kind, line_number)
            return

        match = self.JAVA_EXTENDS.search(line)
        if match:
            state.add_inheritance(match.group(1), match.group(2), InheritanceType.EXTENDS, line_number)
        match = self.JAVA_IMPLEMENTS.search(line)
        if match:
            for iface in _split_names(re.sub(r"<[^>]*>", "", match.group(2))):
                state.add_inheritance(match.group(1), iface, InheritanceType.IMPLEMENTS, line_number)
        match = self.CPP_CLASS.search(line)
        if match:
            state.add_inheritance(match.group(1), match.group(2), InheritanceType.EXTENDS, line_number)
