class SourceFormatNotFoundError(Exception):
    def __init__(self, source_format: str):
        super().__init__(f"No plugin registered for source_format: {source_format!r}")
        self.source_format = source_format


class SourceFormatRegistry:
    def __init__(self):
        self._plugins: dict[str, object] = {}

    def register(self, plugin_cls) -> None:
        instance = plugin_cls()
        self._plugins[instance.source_format] = instance

    def resolve(self, source_format: str):
        key = (source_format or "").upper()
        if key not in self._plugins:
            raise SourceFormatNotFoundError(source_format)
        return self._plugins[key]

    def keys(self) -> list[str]:
        return sorted(self._plugins.keys())


def default_registry() -> SourceFormatRegistry:
    from app.plugins.canonical import CanonicalPlugin
    from app.plugins.spreadsheet_export import SpreadsheetExportPlugin

    registry = SourceFormatRegistry()
    registry.register(CanonicalPlugin)
    registry.register(SpreadsheetExportPlugin)
    return registry
