"""Shared fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture
def docs_root(tmp_path: Path) -> Path:
    """A small Markdown tree with English and CJK documents."""
    root = tmp_path / "docs_root"
    (root / "docs" / "tutorials").mkdir(parents=True)
    (root / "blog").mkdir()
    (root / "README.md").write_text("# Intro\n", encoding="utf-8")
    (root / "notes.md").write_text("# Notes\nproject details", encoding="utf-8")
    (root / "docs" / "getting-started.md").write_text(
        "# Getting Started\nLearn how to get started quickly.", encoding="utf-8"
    )
    (root / "docs" / "tutorials" / "basic.md").write_text(
        "# Basic Tutorial\nThis tutorial covers the basics.\n## Step 1\nFirst step here.",
        encoding="utf-8",
    )
    (root / "docs" / "中文指南.md").write_text(
        "# 中文指南\n这是一个中文文档示例。\n\n## 快速开始\n按照以下步骤开始使用。",
        encoding="utf-8",
    )
    (root / "blog" / "混合内容.md").write_text(
        "# Mixed Content / 混合内容\nThis document contains both English and 中文内容.",
        encoding="utf-8",
    )
    (root / "image.png").write_bytes(b"\x89PNG\r\n\x1a\n")
    return root
