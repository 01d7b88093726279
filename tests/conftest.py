from __future__ import annotations

import pytest

from answer_engine.services import cache
from answer_engine.services.prompt_store import clear_prompt_cache


@pytest.fixture(autouse=True)
def _clear_caches():
    cache.clear_all()
    clear_prompt_cache()
    yield
    cache.clear_all()
