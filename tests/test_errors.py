"""Tests for the exception hierarchy."""

from __future__ import annotations

import pytest

from randvoice.errors import (
    ConfigError,
    ProtocolError,
    RandVoiceError,
    ShutdownError,
    TransportError,
)


@pytest.mark.parametrize("exc_cls", [ConfigError, ProtocolError, TransportError, ShutdownError])
def test_subclasses_share_base(exc_cls: type[RandVoiceError]) -> None:
    assert issubclass(exc_cls, RandVoiceError)
    with pytest.raises(RandVoiceError, match="boom"):
        raise exc_cls("boom")


def test_base_is_exception() -> None:
    assert issubclass(RandVoiceError, Exception)
