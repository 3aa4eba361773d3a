import sys
import textwrap
from typing import Callable

import pytest

from gpt_stream.core.utils.config import Settings


CHUNKS_SCRIPT = """
import sys, time
for part in ["Hello", ", ", "world"]:
    sys.stdout.write(part)
    sys.stdout.flush()
    time.sleep(0.01)
"""

ECHO_PROMPT_SCRIPT = """
import sys
with open(sys.argv[1], encoding="utf-8") as handle:
    sys.stdout.buffer.write(handle.read().encode("utf-8"))
"""

FAILING_SCRIPT = """
import sys
sys.stdout.write("partial")
sys.stdout.flush()
sys.stderr.write("boom")
sys.exit(1)
"""

SILENT_FAILURE_SCRIPT = """
import sys
sys.stderr.write("no credentials")
sys.exit(3)
"""


def fake_backend(script: str) -> tuple:
    return (sys.executable, "-c", textwrap.dedent(script))


@pytest.fixture
def make_settings(tmp_path) -> Callable[..., Settings]:
    def factory(script: str = CHUNKS_SCRIPT, **overrides) -> Settings:
        values = {
            "backend_command": fake_backend(script),
            "liveness_interval": 0.01,
            "openai_api_key": "test-key",
            "state_file": tmp_path / "state.json",
        }
        values.update(overrides)
        return Settings(**values)

    return factory
