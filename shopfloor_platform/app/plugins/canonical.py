from app.plugins.base import SourceFormatPlugin


class CanonicalPlugin(SourceFormatPlugin):
    @property
    def source_format(self) -> str:
        return "CANONICAL"

    def to_canonical(self, row: dict) -> dict:
        return {str(key).strip(): value for key, value in row.items() if key is not None}
