"""Tree-sitter based extraction for Python, JavaScript and TypeScript."""

import logging
from typing import Any, List, Optional

from ..errors import ParseError
from .grammars import CAPABILITY_AST, LanguageConfig, LanguageRegistry
from .models import CallType, DependencyType, ExportType, ImportType, InheritanceType
from .relationship_extractors import ExtractionResult, ExtractionState, LanguageExtractor
from .text_features import (
    is_node_builtin,
    is_python_builtin,
    resolve_python_module,
    resolve_relative_path,
)

logger = logging.getLogger(__name__)


def _text(node: Any) -> str:
    return node.text.decode("utf-8") if node is not None else ""


def _line(node: Any) -> int:
    return node.start_point[0] + 1


def _strip_quotes(value: str) -> str:
    return value.strip("\"'`")


class TreeSitterExtractor(LanguageExtractor):
    """Walks a tree-sitter syntax tree once, collecting every feature on the way."""

    capability = CAPABILITY_AST

    COMPLEXITY_NODES: frozenset = frozenset()
    FUNCTION_NODES: frozenset = frozenset()
    CLASS_NODES: frozenset = frozenset()

    def __init__(self, registry: LanguageRegistry):
        self.registry = registry

    def extract(self, content: str, file_path: str, language: LanguageConfig) -> ExtractionResult:
        parser = self.registry.get_parser(language)
        if parser is None:
            raise ParseError(f"No tree-sitter grammar available for {language.name}")

        tree = parser.parse(content.encode("utf-8"))
        if tree.root_node.has_error:
            raise ParseError(f"Syntax errors in {file_path}")

        state = ExtractionState(file_path, content, language)
        stack = [(tree.root_node, 0, "global")]
        while stack:
            node, depth, context = stack.pop()
            state.structural.ast_nodes += 1
            state.structural.nesting_depth = max(state.structural.nesting_depth, depth)

            if node.type in self.COMPLEXITY_NODES or self.is_logical_branch(node):
                state.structural.complexity += 1
            if node.type in self.CLASS_NODES:
                state.structural.class_count += 1
            if node.type in self.FUNCTION_NODES:
                state.structural.function_count += 1
                context = self.function_name(node) or context

            self.visit(node, context, state)

            for child in reversed(node.named_children):
                stack.append((child, depth + 1, context))

        return state.finish(self.capability)

    def is_logical_branch(self, node: Any) -> bool:
        return False

    def function_name(self, node: Any) -> Optional[str]:
        name = node.child_by_field_name("name")
        return _text(name) if name is not None else None

    def visit(self, node: Any, context: str, state: ExtractionState) -> None:
        raise NotImplementedError


class PythonASTExtractor(TreeSitterExtractor):
    """Python extraction over the tree-sitter-python grammar."""

    COMPLEXITY_NODES = frozenset(
        [
            "if_statement",
            "elif_clause",
            "for_statement",
            "while_statement",
            "except_clause",
            "conditional_expression",
            "boolean_operator",
            "case_clause",
            "for_in_clause",
            "if_clause",
        ]
    )
    FUNCTION_NODES = frozenset(["function_definition"])
    CLASS_NODES = frozenset(["class_definition"])

    def visit(self, node: Any, context: str, state: ExtractionState) -> None:
        node_type = node.type
        if node_type == "comment":
            state.textual.comments.append(_text(node))
        elif node_type == "identifier":
            state.add_identifier(_text(node))
        elif node_type == "expression_statement":
            self._visit_docstring(node, state)
        elif node_type == "import_statement":
            self._visit_import(node, state)
        elif node_type == "import_from_statement":
            self._visit_import_from(node, state)
        elif node_type == "call":
            self._visit_call(node, context, state)
        elif node_type == "class_definition":
            self._visit_class(node, state)
        elif node_type == "function_definition":
            self._visit_function(node, state)
        elif node_type == "assignment":
            self._visit_assignment(node, state)

    def _is_top_level(self, node: Any) -> bool:
        parent = node.parent
        if parent is not None and parent.type == "decorated_definition":
            parent = parent.parent
        return parent is not None and parent.type == "module"

    def _visit_docstring(self, node: Any, state: ExtractionState) -> None:
        children = node.named_children
        if len(children) != 1 or children[0].type != "string":
            return
        parent = node.parent
        if parent is None:
            return
        if parent.type == "block":
            owner = parent.parent
            if owner is None or owner.type not in ("function_definition", "class_definition"):
                return
        elif parent.type != "module":
            return

        previous = node.prev_named_sibling
        while previous is not None and previous.type == "comment":
            previous = previous.prev_named_sibling
        if previous is None:
            state.textual.docstrings.append(_text(children[0]))

    def _visit_import(self, node: Any, state: ExtractionState) -> None:
        # import a.b [as c], d
        for child in node.named_children:
            if child.type == "aliased_import":
                module = _text(child.child_by_field_name("name"))
                alias = _text(child.child_by_field_name("alias")) or module
            elif child.type == "dotted_name":
                module = alias = _text(child)
            else:
                continue
            dependency_type = (
                DependencyType.BUILTIN if is_python_builtin(module) else DependencyType.NPM
            )
            state.add_import(module, [alias], ImportType.NAMESPACE, _line(node), dependency_type)

    def _visit_import_from(self, node: Any, state: ExtractionState) -> None:
        # from module import a, b as c / from module import *
        module = _text(node.child_by_field_name("module_name"))
        if not module:
            return

        symbols: List[str] = []
        import_type = ImportType.NAMED
        if any(child.type == "wildcard_import" for child in node.named_children):
            symbols = ["*"]
            import_type = ImportType.NAMESPACE
        else:
            for name_node in node.children_by_field_name("name"):
                if name_node.type == "aliased_import":
                    symbols.append(_text(name_node.child_by_field_name("name")))
                else:
                    symbols.append(_text(name_node))

        resolved = resolve_python_module(module, state.file_path)
        if resolved is not None:
            state.add_import(resolved, symbols, import_type, _line(node), DependencyType.LOCAL)
            return
        dependency_type = DependencyType.BUILTIN if is_python_builtin(module) else DependencyType.NPM
        state.add_import(module, symbols, import_type, _line(node), dependency_type)

    def _visit_call(self, node: Any, context: str, state: ExtractionState) -> None:
        func_node = node.child_by_field_name("function")
        if func_node is None:
            return

        obj = None
        if func_node.type == "identifier":
            name = _text(func_node)
        elif func_node.type == "attribute":
            name = _text(func_node.child_by_field_name("attribute"))
            obj = _text(func_node.child_by_field_name("object"))
        else:
            return

        parent = node.parent
        if parent is not None and parent.type == "await":
            call_type = CallType.ASYNC
        elif name[:1].isupper():
            call_type = CallType.CONSTRUCTOR
        elif obj is not None:
            call_type = CallType.METHOD
        else:
            call_type = CallType.DIRECT
        state.add_call(name, call_type, _line(node), context, obj)

    def _visit_class(self, node: Any, state: ExtractionState) -> None:
        class_name = _text(node.child_by_field_name("name"))
        if self._is_top_level(node) and not class_name.startswith("_"):
            state.add_export(class_name, ExportType.NAMED, _line(node))

        bases = node.child_by_field_name("superclasses")
        if bases is None:
            return
        for base in bases.named_children:
            if base.type not in ("identifier", "attribute"):
                continue
            parent = _text(base)
            kind = (
                InheritanceType.MIXIN
                if parent.split(".")[-1].endswith("Mixin")
                else InheritanceType.EXTENDS
            )
            state.add_inheritance(class_name, parent, kind, _line(node))

    def _visit_function(self, node: Any, state: ExtractionState) -> None:
        name = _text(node.child_by_field_name("name"))
        if self._is_top_level(node) and not name.startswith("_"):
            state.add_export(name, ExportType.NAMED, _line(node))

        parameters = node.child_by_field_name("parameters")
        if parameters is None:
            return
        for param in parameters.named_children:
            if param.type == "identifier":
                state.add_variable(_text(param))
            elif param.type in ("default_parameter", "typed_default_parameter"):
                state.add_variable(_text(param.child_by_field_name("name")))
            elif param.type in ("typed_parameter", "list_splat_pattern", "dictionary_splat_pattern"):
                for child in param.named_children:
                    if child.type == "identifier":
                        state.add_variable(_text(child))
                        break

    def _visit_assignment(self, node: Any, state: ExtractionState) -> None:
        left = node.child_by_field_name("left")
        if left is None:
            return
        if left.type == "identifier":
            name = _text(left)
            state.add_variable(name)
            if name == "__all__" and node.parent is not None:
                self._visit_dunder_all(node, state)
        elif left.type in ("pattern_list", "tuple_pattern", "list_pattern"):
            for child in left.named_children:
                if child.type == "identifier":
                    state.add_variable(_text(child))

    def _visit_dunder_all(self, node: Any, state: ExtractionState) -> None:
        statement = node.parent
        if statement.parent is None or statement.parent.type != "module":
            return
        right = node.child_by_field_name("right")
        if right is None or right.type not in ("list", "tuple"):
            return
        for item in right.named_children:
            if item.type == "string":
                state.add_export(_strip_quotes(_text(item)), ExportType.NAMED, _line(item))


class JavaScriptASTExtractor(TreeSitterExtractor):
    """JavaScript extraction over the tree-sitter-javascript grammar."""

    COMPLEXITY_NODES = frozenset(
        [
            "if_statement",
            "for_statement",
            "for_in_statement",
            "while_statement",
            "do_statement",
            "switch_case",
            "catch_clause",
            "ternary_expression",
        ]
    )
    FUNCTION_NODES = frozenset(
        [
            "function_declaration",
            "generator_function_declaration",
            "function_expression",
            "function",
            "arrow_function",
            "method_definition",
        ]
    )
    CLASS_NODES = frozenset(["class_declaration", "class"])
    IDENTIFIER_NODES = frozenset(
        ["identifier", "property_identifier", "type_identifier", "shorthand_property_identifier"]
    )
    LOGICAL_OPERATORS = frozenset(["&&", "||", "??"])

    def is_logical_branch(self, node: Any) -> bool:
        if node.type != "binary_expression":
            return False
        operator = node.child_by_field_name("operator")
        return operator is not None and operator.type in self.LOGICAL_OPERATORS

    def function_name(self, node: Any) -> Optional[str]:
        name = node.child_by_field_name("name")
        if name is not None:
            return _text(name)
        parent = node.parent
        if parent is not None and parent.type == "variable_declarator":
            return _text(parent.child_by_field_name("name"))
        if parent is not None and parent.type == "pair":
            return _text(parent.child_by_field_name("key"))
        return None

    def visit(self, node: Any, context: str, state: ExtractionState) -> None:
        node_type = node.type
        if node_type == "comment":
            text = _text(node)
            if text.startswith("/**"):
                state.textual.docstrings.append(text)
            else:
                state.textual.comments.append(text)
        elif node_type in self.IDENTIFIER_NODES:
            state.add_identifier(_text(node))
        elif node_type == "import_statement":
            self._visit_import(node, state)
        elif node_type == "export_statement":
            self._visit_export(node, state)
        elif node_type == "call_expression":
            self._visit_call(node, context, state)
        elif node_type == "new_expression":
            self._visit_new(node, context, state)
        elif node_type == "interface_declaration":
            self._visit_interface(node, state)
        elif node_type in ("class_declaration", "class", "abstract_class_declaration"):
            self._visit_class(node, state)
        elif node_type == "variable_declarator":
            name = node.child_by_field_name("name")
            if name is not None and name.type == "identifier":
                state.add_variable(_text(name))
        elif node_type == "formal_parameters":
            self._visit_parameters(node, state)

    def _add_module_import(
        self, source: str, symbols: List[str], import_type: ImportType, line: int,
        state: ExtractionState,
    ) -> None:
        target = resolve_relative_path(source, state.file_path)
        if target != source:
            dependency_type = DependencyType.LOCAL
        elif is_node_builtin(source):
            dependency_type = DependencyType.BUILTIN
        else:
            dependency_type = DependencyType.NPM
        state.add_import(target, symbols, import_type, line, dependency_type)

    def _visit_import(self, node: Any, state: ExtractionState) -> None:
        source = _strip_quotes(_text(node.child_by_field_name("source")))
        if not source:
            return

        symbols: List[str] = []
        import_type = ImportType.NAMED
        for clause in node.named_children:
            if clause.type != "import_clause":
                continue
            for spec in clause.named_children:
                if spec.type == "identifier":
                    symbols.append(_text(spec))
                    import_type = ImportType.DEFAULT
                elif spec.type == "named_imports":
                    for item in spec.named_children:
                        if item.type == "import_specifier":
                            symbols.append(_text(item.child_by_field_name("name")))
                elif spec.type == "namespace_import":
                    for item in spec.named_children:
                        if item.type == "identifier":
                            symbols.append(_text(item))
                    import_type = ImportType.NAMESPACE

        self._add_module_import(source, symbols, import_type, _line(node), state)

    def _visit_export(self, node: Any, state: ExtractionState) -> None:
        line = _line(node)
        is_default = any(child.type == "default" for child in node.children)
        declaration = node.child_by_field_name("declaration")
        source_node = node.child_by_field_name("source")

        if is_default:
            symbol = "default"
            target = declaration or node.child_by_field_name("value")
            if target is not None:
                name = target.child_by_field_name("name")
                if name is not None:
                    symbol = _text(name)
                elif target.type == "identifier":
                    symbol = _text(target)
            state.add_export(symbol, ExportType.DEFAULT, line)
            return

        if declaration is not None:
            if declaration.type in ("lexical_declaration", "variable_declaration"):
                for declarator in declaration.named_children:
                    if declarator.type == "variable_declarator":
                        name = declarator.child_by_field_name("name")
                        if name is not None and name.type == "identifier":
                            state.add_export(_text(name), ExportType.NAMED, line)
            else:
                name = declaration.child_by_field_name("name")
                if name is not None:
                    state.add_export(_text(name), ExportType.NAMED, line)
            return

        exported: List[str] = []
        for child in node.named_children:
            if child.type == "export_clause":
                for spec in child.named_children:
                    if spec.type != "export_specifier":
                        continue
                    alias = spec.child_by_field_name("alias")
                    symbol = _text(alias) if alias is not None else _text(
                        spec.child_by_field_name("name")
                    )
                    exported.append(symbol)
                    state.add_export(symbol, ExportType.NAMED, line)
            elif child.type == "namespace_export":
                alias = [_text(c) for c in child.named_children]
                exported.extend(alias)
                state.add_export(alias[0] if alias else "*", ExportType.NAMESPACE, line)

        if source_node is not None:
            source = _strip_quotes(_text(source_node))
            if not exported:
                # export * from "module"
                state.add_export("*", ExportType.NAMESPACE, line)
                self._add_module_import(source, ["*"], ImportType.NAMESPACE, line, state)
            else:
                self._add_module_import(source, exported, ImportType.NAMED, line, state)

    def _call_type(self, node: Any, default: CallType) -> CallType:
        parent = node.parent
        if parent is not None and parent.type == "await_expression":
            return CallType.ASYNC
        return default

    def _visit_call(self, node: Any, context: str, state: ExtractionState) -> None:
        func_node = node.child_by_field_name("function")
        if func_node is None:
            return

        if func_node.type == "import" or (
            func_node.type == "identifier" and _text(func_node) == "require"
        ):
            arguments = node.child_by_field_name("arguments")
            args = arguments.named_children if arguments is not None else []
            if args and args[0].type == "string":
                source = _strip_quotes(_text(args[0]))
                self._add_module_import(source, [], ImportType.DYNAMIC, _line(node), state)
            return

        if func_node.type == "identifier":
            state.add_call(
                _text(func_node), self._call_type(node, CallType.DIRECT), _line(node), context
            )
        elif func_node.type == "member_expression":
            prop = func_node.child_by_field_name("property")
            if prop is None:
                return
            obj = func_node.child_by_field_name("object")
            state.add_call(
                _text(prop),
                self._call_type(node, CallType.METHOD),
                _line(node),
                context,
                _text(obj) if obj is not None else None,
            )

    def _visit_new(self, node: Any, context: str, state: ExtractionState) -> None:
        constructor = node.child_by_field_name("constructor")
        if constructor is None:
            return
        if constructor.type == "member_expression":
            prop = constructor.child_by_field_name("property")
            obj = constructor.child_by_field_name("object")
            state.add_call(
                _text(prop), CallType.CONSTRUCTOR, _line(node), context, _text(obj) or None
            )
        else:
            state.add_call(_text(constructor), CallType.CONSTRUCTOR, _line(node), context)

    def _visit_class(self, node: Any, state: ExtractionState) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return
        class_name = _text(name_node)
        for child in node.named_children:
            if child.type != "class_heritage":
                continue
            for clause in child.named_children:
                if clause.type == "extends_clause":
                    for base in clause.named_children:
                        if base.type in ("identifier", "member_expression"):
                            state.add_inheritance(
                                class_name, _text(base), InheritanceType.EXTENDS, _line(node)
                            )
                elif clause.type == "implements_clause":
                    for iface in clause.named_children:
                        state.add_inheritance(
                            class_name,
                            self._type_name(iface),
                            InheritanceType.IMPLEMENTS,
                            _line(node),
                        )
                elif clause.type in ("identifier", "member_expression"):
                    state.add_inheritance(
                        class_name, _text(clause), InheritanceType.EXTENDS, _line(node)
                    )

    def _visit_interface(self, node: Any, state: ExtractionState) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return
        for child in node.named_children:
            if child.type == "extends_type_clause":
                for base in child.named_children:
                    state.add_inheritance(
                        _text(name_node), self._type_name(base), InheritanceType.EXTENDS,
                        _line(node),
                    )

    def _type_name(self, node: Any) -> str:
        # generic_type: Comparable<T> -> Comparable
        if node.type == "generic_type":
            name = node.child_by_field_name("name")
            if name is not None:
                return _text(name)
        return _text(node)

    def _visit_parameters(self, node: Any, state: ExtractionState) -> None:
        for param in node.named_children:
            if param.type == "identifier":
                state.add_variable(_text(param))
            elif param.type == "assignment_pattern":
                left = param.child_by_field_name("left")
                if left is not None and left.type == "identifier":
                    state.add_variable(_text(left))
            elif param.type in ("required_parameter", "optional_parameter"):
                pattern = param.child_by_field_name("pattern")
                if pattern is not None and pattern.type == "identifier":
                    state.add_variable(_text(pattern))
            elif param.type == "rest_pattern":
                for child in param.named_children:
                    if child.type == "identifier":
                        state.add_variable(_text(child))


class TypeScriptASTExtractor(JavaScriptASTExtractor):
    """TypeScript extraction (extends JavaScript)."""

    CLASS_NODES = frozenset(
        ["class_declaration", "class", "abstract_class_declaration", "interface_declaration"]
    )
