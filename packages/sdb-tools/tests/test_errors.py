"""Tests for error types."""

from sdb_tools.errors import ErrorKind, SdbError


class TestSdbError:
    """Tests for SdbError and its kinds."""

    def test_kinds(self):
        """Every kind is raised somewhere in the package."""
        assert {kind.value for kind in ErrorKind} == {
            "connection",
            "not_found",
            "invalid_input",
            "provider",
            "offset",
            "checkpoint",
        }

    def test_defaults_to_provider_kind(self):
        source = ValueError("boom")
        error = SdbError("failed", source=source)

        assert error.kind == ErrorKind.PROVIDER
        assert error.message == "failed"
        assert error.source is source
        assert repr(error) == "SdbError('failed', kind=<ErrorKind.PROVIDER: 'provider'>)"
