import pytest

from app.plugins.canonical import CanonicalPlugin
from app.registry import SourceFormatNotFoundError, SourceFormatRegistry, default_registry


def test_registry_resolves_case_insensitively():
    reg = default_registry()
    assert reg.keys() == ["CANONICAL", "SPREADSHEET"]
    assert reg.resolve("spreadsheet").source_format == "SPREADSHEET"
    assert isinstance(reg.resolve("Canonical"), CanonicalPlugin)


def test_registry_unknown_format():
    reg = SourceFormatRegistry()
    with pytest.raises(SourceFormatNotFoundError):
        reg.resolve("CANONICAL")
    reg.register(CanonicalPlugin)
    with pytest.raises(SourceFormatNotFoundError, match="MES_EXPORT"):
        reg.resolve("MES_EXPORT")


def test_canonical_plugin_strips_keys():
    out = CanonicalPlugin().to_canonical({" heat_number ": "H1", "date": "02/04/25"})
    assert out == {"heat_number": "H1", "date": "02/04/25"}
