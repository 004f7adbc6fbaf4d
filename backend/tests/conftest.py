import sys
from pathlib import Path

import pytest

# Ensure backend/ is on sys.path so `import devpush` and `import server` work uninstalled
BACKEND = Path(__file__).resolve().parent.parent
if str(BACKEND) not in sys.path:
    sys.path.insert(0, str(BACKEND))

from devpush.build import BuildCoordinator  # noqa: E402
from devpush.config import Settings  # noqa: E402


PYTHON_APP_YAML = "runtime: python\nvm: true\n"

# Answers every GET with the request path and the GREETING variable.
SERVING_MAIN = """\
import os
from http.server import BaseHTTPRequestHandler, HTTPServer


class Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        body = (os.environ.get("GREETING", "hello") + " " + self.path).encode()
        self.send_response(200)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, *args):
        pass


HTTPServer(("127.0.0.1", int(os.environ["PORT"])), Handler).serve_forever()
"""

SLEEPING_MAIN = "import time\nprint('started', flush=True)\ntime.sleep(60)\n"


def write_tree(root: Path, files: dict[str, str]) -> Path:
    """Create ``files`` (path -> text) under ``root``. A trailing slash makes a directory."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, text in files.items():
        target = root / rel
        if rel.endswith("/"):
            target.mkdir(parents=True, exist_ok=True)
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text)
    return root


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(work_dir=tmp_path / "server")


@pytest.fixture
def coordinator(settings):
    coord = BuildCoordinator(settings)
    yield coord
    coord.shutdown()
