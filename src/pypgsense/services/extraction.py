from collections.abc import Callable

from loguru import logger

from pypgsense.config import LanguageConfig
from pypgsense.core.models import CompletionContext, SqlCandidateGroup, SqlToken
from pypgsense.core.ports import ISyntaxParser
from pypgsense.core.registry import ComponentRegistry
from pypgsense.infrastructure.chunking.embedded import EmbeddedSqlExtractor
from pypgsense.infrastructure.chunking.tokens import highlight_candidates

ParserFactory = Callable[[str, LanguageConfig], ISyntaxParser | None]


class ExtractionService:
    """Finds embedded SQL in host-language text, one parser per configured language."""

    def __init__(
        self,
        languages: dict[str, LanguageConfig],
        parser_factory: ParserFactory = ComponentRegistry.get_parser,
    ) -> None:
        self.languages = languages
        self.parser_factory = parser_factory

    def language_for_path(self, path: str) -> str | None:
        """Host language whose file extensions match `path`, if any."""
        lowered = path.lower()
        for name, config in self.languages.items():
            if any(lowered.endswith(ext) for ext in config.file_extensions):
                return name
        return None

    def _resolve(self, language: str) -> tuple[ISyntaxParser, EmbeddedSqlExtractor] | None:
        config = self.languages.get(language)
        if config is None:
            raise ValueError(f"Unknown host language: '{language}'")

        parser = self.parser_factory(language, config)
        if parser is None:
            logger.debug("No parser available for '{}', skipping extraction", language)
            return None
        return parser, EmbeddedSqlExtractor(config)

    def extract(self, text: str, language: str) -> list[SqlCandidateGroup]:
        resolved = self._resolve(language)
        if resolved is None:
            return []
        parser, extractor = resolved
        return extractor.extract_candidates(parser.parse(text), text)

    def context_at(self, text: str, offset: int, language: str) -> CompletionContext | None:
        resolved = self._resolve(language)
        if resolved is None:
            return None
        parser, extractor = resolved
        return extractor.completion_context_at(parser.parse(text), text, offset)

    def highlight(self, text: str, language: str) -> list[SqlToken]:
        """SQL tokens inside embedded strings, offsets into `text`."""
        return highlight_candidates(self.extract(text, language))
