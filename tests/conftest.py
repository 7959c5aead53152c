"""Pytest configuration and fixtures for surfaceshift tests."""

import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from surfaceshift.core.models import RenameHint

OLD_LIBRARY = {
    "index.yml": """
entities:
  - name: formatDate
    kind: function
    parameters:
      - {name: value, type: number}
      - {name: pattern, type: string, optional: true}
    returns: string
  - name: Card
    kind: component
    props:
      - {name: title, type: string}
  - name: legacyHelper
    kind: function
    parameters:
      - {name: input, type: string}
    returns: string
""",
    "components/Button.yml": """
entities:
  - name: Button
    kind: component
    props:
      - name: variant
        type: "'primary' | 'secondary'"
      - name: label
        type: string
""",
    "components/Badge.yml": """
entities:
  - name: Badge
    kind: component
    props:
      - {name: text, type: string}
      - {name: isInline, type: boolean, optional: true}
""",
    "tokens.yml": """
entities:
  - name: colorPrimary
    kind: token
    value: "#0055ff"
""",
}

NEW_LIBRARY = {
    "index.yml": """
entities:
  - name: formatDate
    kind: function
    parameters:
      - {name: value, type: number}
    returns: string
  - name: Tile
    kind: component
    props:
      - {name: title, type: string}
""",
    "components/Button.yml": """
entities:
  - name: Button
    kind: component
    props:
      - name: variant
        type: "'primary' | 'secondary'"
      - name: label
        type: string
      - name: onAction
        type: "() => void"
""",
    "components/Badge.yml": """
entities:
  - name: Badge
    kind: component
    props:
      - {name: text, type: string}
      - {name: inline, type: boolean, optional: true}
""",
    "components/Tooltip.yml": """
entities:
  - name: Tooltip
    kind: component
    props:
      - {name: content, type: string}
""",
    "tokens.yml": """
entities:
  - name: colorPrimary
    kind: token
    value: "#0044ee"
""",
}

RENAME_HINTS = """renames:
  - {module_path: index, old_name: Card, new_name: Tile}
  - {module_path: components/Badge, old_name: isInline, new_name: inline, member_of: Badge}
"""

CATALOG = r"""rules:
  - id: rename-symbol
    description: Rename an imported symbol
    match_pattern: "renamed:entity"
    rewrite_template:
      action: rename_symbol
  - id: badge-inline
    description: Badge isInline is now inline
    match_pattern: "signature_changed:param_renamed:*:Badge:isInline"
    rewrite_template:
      action: rename_prop
  - id: format-date-pattern
    description: Drop the pattern argument of formatDate
    match_pattern: "signature_changed:param_removed:index:formatDate:pattern"
    complexity: 2
    rewrite_template:
      action: regex
      pattern: "formatDate\\(([^,()]+),\\s*[^()]+\\)"
      replacement: "formatDate(\\1)"
      example: "formatDate(now, 'yyyy')"
"""


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def write_tree(root: Path, files: dict[str, str]) -> Path:
    """Write a mapping of relative path to text under ``root``."""
    for relative, text in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
    return root


@pytest.fixture
def old_library() -> dict[str, str]:
    """Declaration set of version 1.0.0."""
    return dict(OLD_LIBRARY)


@pytest.fixture
def new_library() -> dict[str, str]:
    """Declaration set of version 2.0.0."""
    return dict(NEW_LIBRARY)


@pytest.fixture
def library_dirs(temp_dir: Path) -> tuple[Path, Path]:
    """Both library versions written to disk."""
    old_dir = write_tree(temp_dir / "old", OLD_LIBRARY)
    new_dir = write_tree(temp_dir / "new", NEW_LIBRARY)
    return old_dir, new_dir


@pytest.fixture
def rename_hints() -> list[RenameHint]:
    """Explicit renames between the two library versions."""
    return [
        RenameHint(module_path="index", old_name="Card", new_name="Tile"),
        RenameHint(module_path="components/Badge", old_name="isInline", new_name="inline", member_of="Badge"),
    ]


@pytest.fixture
def hints_file(temp_dir: Path) -> Path:
    """Rename hints written as YAML."""
    path = temp_dir / "renames.yml"
    path.write_text(RENAME_HINTS)
    return path


@pytest.fixture
def catalog_file(temp_dir: Path) -> Path:
    """Rewrite catalog written as YAML."""
    path = temp_dir / "catalog.yml"
    path.write_text(CATALOG)
    return path


@pytest.fixture
def consumer_dir(temp_dir: Path) -> Path:
    """A consumer project using the library."""
    return write_tree(
        temp_dir / "consumer",
        {
            "src/App.tsx": (
                "import { Badge, Button, Card } from 'ui-kit';\n"
                "\n"
                "export const App = () => (\n"
                "  <Card title=\"Hello\">\n"
                "    <Badge text=\"new\" isInline />\n"
                "    <Button variant=\"primary\" label=\"Go\" />\n"
                "  </Card>\n"
                ");\n"
            ),
            "src/dates.ts": (
                "import { formatDate } from 'ui-kit';\n"
                "\n"
                "export const stamp = (now: number) => formatDate(now, 'yyyy-MM-dd');\n"
            ),
            "src/plain.ts": "export const answer = 42;\n",
            "node_modules/ui-kit/index.js": "export const Card = () => null;\n",
        },
    )


@pytest.fixture
def sample_package_lock(temp_dir: Path) -> Path:
    """Create a sample package-lock.json file."""
    content = """{
  "name": "sample-project",
  "version": "1.0.0",
  "lockfileVersion": 3,
  "requires": true,
  "packages": {
    "": {
      "name": "sample-project",
      "version": "1.0.0",
      "dependencies": {
        "ui-kit": "^2.0.0",
        "core-lib": "^5.0.0"
      },
      "devDependencies": {
        "jest": "^29.7.0"
      }
    },
    "node_modules/ui-kit": {
      "version": "2.1.0",
      "dependencies": {
        "core-lib": "^6.0.0"
      }
    },
    "node_modules/core-lib": {
      "version": "5.2.0"
    },
    "node_modules/ui-kit/node_modules/core-lib": {
      "version": "6.1.0"
    },
    "node_modules/jest": {
      "version": "29.7.0",
      "dev": true
    }
  }
}"""
    file_path = temp_dir / "package-lock.json"
    file_path.write_text(content)
    return file_path


@pytest.fixture
def conflicting_manifest(temp_dir: Path) -> Path:
    """Consumer requires coreLib ^5 while uiKit requires ^6."""
    content = """roots: [app@1.0.0]
packages:
  app@1.0.0:
    dependencies:
      coreLib: ^5.0.0
      uiKit: ^2.0.0
  uiKit@2.0.0:
    dependencies:
      coreLib: ^6.0.0
  coreLib@5.2.0: {}
  coreLib@6.1.0: {}
"""
    file_path = temp_dir / "manifest.yml"
    file_path.write_text(content)
    return file_path


@pytest.fixture
def sample_config(temp_dir: Path) -> Path:
    """Create a sample .surfaceshift.yml configuration file."""
    content = """version: 1
log_level: debug

diff:
  strict_optional_removal: true

corpus:
  timeout_seconds: 5
  max_files: 100

generation:
  fail_on_ambiguity: true
"""
    file_path = temp_dir / ".surfaceshift.yml"
    file_path.write_text(content)
    return file_path


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove surfaceshift environment overrides."""
    monkeypatch.delenv("SURFACESHIFT_LOG_LEVEL", raising=False)
    monkeypatch.delenv("SURFACESHIFT_CORPUS_TIMEOUT", raising=False)
