from collections.abc import Iterator

from loguru import logger

from pypgsense.config import LanguageConfig
from pypgsense.core.models import CompletionContext, Document, SqlCandidateGroup, StringFragment
from pypgsense.core.ports import ISyntaxNode, ISyntaxParser, ISyntaxTree
from pypgsense.infrastructure.chunking.classifier import looks_like_sql


class EmbeddedSqlExtractor:
    """
    Finds SQL held in string literals of host-language source.

    Two structural triggers are checked on every node of the tree: the value
    side of an assignment and the first positional argument of any call. All
    string-content nodes below a trigger are joined (in source order, one per
    line) into a candidate group, which is kept if it looks like SQL.
    """

    def __init__(self, language: LanguageConfig) -> None:
        self.language = language
        self._assignment_kinds = frozenset(language.assignment_kinds)
        self._call_kinds = frozenset(language.call_kinds)
        self._string_content_kinds = frozenset(language.string_content_kinds)

    def extract_candidates(self, tree: ISyntaxTree | None, source: str) -> list[SqlCandidateGroup]:
        """Returns candidate groups ordered by the offset of their first fragment."""
        if tree is None:
            return []

        groups: list[SqlCandidateGroup] = []
        seen: set[tuple[int, int]] = set()
        stack: list[ISyntaxNode] = [tree.root_node]

        while stack:
            node = stack.pop()

            if node.kind in self._assignment_kinds:
                value = node.child_by_field_name(self.language.value_field)
                if value is not None:
                    self._add_group(value, source, groups, seen)

            if node.kind in self._call_kinds:
                first_arg = self._first_call_argument(node)
                if first_arg is not None:
                    self._add_group(first_arg, source, groups, seen)

            for i in range(node.child_count):
                child = node.child(i)
                if child is not None:
                    stack.append(child)

        groups.sort(key=lambda group: group.start_offset)
        return groups

    def completion_context_at(
        self, tree: ISyntaxTree | None, source: str, offset: int
    ) -> CompletionContext | None:
        """Maps a source offset inside an embedded SQL string to its SQL-side context."""
        for group in self.extract_candidates(tree, source):
            preceding: list[str] = []
            for part in group.parts:
                if part.start_offset <= offset <= part.end_offset:
                    sql_prefix = "\n".join([*preceding, part.text[: offset - part.start_offset]])
                    return CompletionContext(
                        sql_text=group.content,
                        line_prefix=sql_prefix.rsplit("\n", 1)[-1],
                        sql_offset=len(sql_prefix),
                    )
                preceding.append(part.text)
        return None

    def _add_group(
        self,
        node: ISyntaxNode,
        source: str,
        groups: list[SqlCandidateGroup],
        seen: set[tuple[int, int]],
    ) -> None:
        parts = self._collect_string_content(node, source)
        if not parts:
            return

        content = "\n".join(part.text for part in parts)
        if not looks_like_sql(content):
            return

        key = (parts[0].start_offset, len(content))
        if key in seen:
            return
        seen.add(key)
        groups.append(SqlCandidateGroup(parts=parts, content=content))

    def _first_call_argument(self, call_node: ISyntaxNode) -> ISyntaxNode | None:
        arguments = call_node.child_by_field_name(self.language.arguments_field)
        if arguments is None:
            return None

        for i in range(arguments.named_child_count):
            child = arguments.named_child(i)
            if child is not None:
                return child
        return None

    def _collect_string_content(self, node: ISyntaxNode, source: str) -> list[StringFragment]:
        results: list[StringFragment] = []
        stack: list[ISyntaxNode] = [node]

        while stack:
            current = stack.pop()
            if current.kind in self._string_content_kinds:
                results.append(
                    StringFragment(
                        start_offset=current.start_index,
                        text=source[current.start_index : current.end_index],
                    )
                )
                continue

            for i in range(current.child_count):
                child = current.child(i)
                if child is not None:
                    stack.append(child)

        results.sort(key=lambda part: part.start_offset)
        return results


class EmbeddedSqlChunker:
    """
    Chunker for host-language files: parses the document and yields its SQL candidate groups.
    Implements the IChunker protocol.
    """

    def __init__(self, parser: ISyntaxParser | None, language: LanguageConfig) -> None:
        self.parser = parser
        self.extractor = EmbeddedSqlExtractor(language)

    @property
    def supported_extensions(self) -> list[str]:
        return list(self.extractor.language.file_extensions)

    def process(self, document: Document) -> Iterator[SqlCandidateGroup]:
        """Yields SQL candidate groups found in the document."""
        if self.parser is None:
            return

        tree = self.parser.parse(document.content)
        groups = self.extractor.extract_candidates(tree, document.content)
        logger.debug("Found {} embedded SQL candidates in {}", len(groups), document.uri)
        yield from groups
