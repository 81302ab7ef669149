from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def _clean_permit_env(monkeypatch) -> None:
    for name in list(os.environ):
        if name.startswith("PERMIT_"):
            monkeypatch.delenv(name, raising=False)
