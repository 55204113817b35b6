from .parser import PARSERS, ParsedDocument, parse_document

__all__ = ["PARSERS", "ParsedDocument", "parse_document"]
