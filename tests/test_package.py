"""Tests for tandem package exports and metadata."""

import pytest

import tandem


class TestPackageMetadata:
    """Package-level exports and metadata."""

    def test_version_string(self) -> None:
        assert isinstance(tandem.__version__, str)
        assert "0.1.0" in tandem.__version__

    def test_free_threading_declaration(self) -> None:
        assert tandem._Py_mod_gil == 0

    def test_all_exports_resolvable(self) -> None:
        for name in tandem.__all__:
            getattr(tandem, name)

    def test_exports_point_at_implementations(self) -> None:
        from tandem.sync.host import SessionHost
        from tandem.view.tree import element

        assert tandem.SessionHost is SessionHost
        assert tandem.element is element

    def test_invalid_attribute_raises(self) -> None:
        with pytest.raises(AttributeError, match="no attribute"):
            tandem.nonexistent_thing  # type: ignore[attr-defined]  # noqa: B018
