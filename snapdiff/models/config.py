"""Configuration models for the screenshot workflow."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from snapdiff.errors import ConfigurationError


class ViewportConfig(BaseModel):
    width: int = 1280
    height: int = 720
    name: str = "desktop"


class ComparatorOptions(BaseModel):
    # Per-channel difference allowed before a pixel counts as changed (anti-aliasing, font hinting)
    pixel_tolerance: int = 16
    diff_color: tuple[int, int, int] = (255, 0, 255)


class WorkflowConfig(BaseModel):
    # Inputs
    test_dir: str = "test/screenshot"
    golden_path: str = "test/screenshot/golden.json"
    diff_base: str = ""  # URL, local file, or git "rev[:path]"; empty means golden_path

    # Test page selection
    test_page_pattern: str = r"mdc-.*\.html$"
    include_url_patterns: list[str] = Field(default_factory=list)
    exclude_url_patterns: list[str] = Field(default_factory=list)

    # Storage
    upload_root: str = "./.snapdiff/uploads"
    public_base_url: Optional[str] = None

    # Capture
    browsers: list[str] = Field(default_factory=lambda: ["chromium", "firefox", "webkit"])
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    max_parallel_captures: int = 3
    capture_dir: str = "./.snapdiff/captures"

    # Comparison
    mismatch_threshold: float = 0.0001  # fraction of pixels; 0.01%
    comparator: ComparatorOptions = Field(default_factory=ComparatorOptions)

    # Reporting
    report_output_dir: str = "./snapdiff-reports"

    @field_validator("test_page_pattern", "include_url_patterns", "exclude_url_patterns")
    @classmethod
    def validate_patterns(cls, v):
        for pattern in [v] if isinstance(v, str) else v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid regular expression '{pattern}': {e}") from e
        return v

    def has_page_filters(self) -> bool:
        return bool(self.include_url_patterns or self.exclude_url_patterns)

    @property
    def effective_diff_base(self) -> str:
        return self.diff_base or self.golden_path

    @classmethod
    def load(cls, path: str | Path) -> "WorkflowConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        try:
            with open(path) as f:
                data = json.load(f)
            return cls(**data)
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            raise ConfigurationError(f"Invalid config file: {e}", {"config": str(path)}) from e

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)
