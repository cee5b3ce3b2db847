"""Profile loader for editor, detection and identification thresholds."""

import yaml
from pathlib import Path
from typing import Dict, Any
from dataclasses import dataclass, field


DEFAULT_EDITOR = {
    'min_draw_size': 3.0,
    'min_box_size': 5.0,
    'grid_margin': 5.0,
    'default_display_size': 100,
}

DEFAULT_DETECTION = {
    'min_box_size': 1.0,
}

DEFAULT_IDENTIFICATION = {
    'acceptance_threshold': 0.3,
    'script': 'hebrew',
    'search_window': 40,
    'search_size': 5,
}

DEFAULT_EXPORT = {
    'preview_width': 800,
}


def _merged(defaults: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(defaults)
    merged.update(overrides or {})
    return merged


@dataclass
class ProfileConfig:
    """Configuration profile for editing and identification behavior."""
    name: str
    description: str = ""
    editor: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_EDITOR))
    detection: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_DETECTION))
    identification: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_IDENTIFICATION))
    export: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_EXPORT))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProfileConfig':
        """Create ProfileConfig from dictionary, filling missing keys with defaults."""
        return cls(
            name=data.get('name', 'default'),
            description=data.get('description', ''),
            editor=_merged(DEFAULT_EDITOR, data.get('editor', {})),
            detection=_merged(DEFAULT_DETECTION, data.get('detection', {})),
            identification=_merged(DEFAULT_IDENTIFICATION, data.get('identification', {})),
            export=_merged(DEFAULT_EXPORT, data.get('export', {})),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'name': self.name,
            'description': self.description,
            'editor': self.editor,
            'detection': self.detection,
            'identification': self.identification,
            'export': self.export,
        }


def get_profiles_dir() -> Path:
    """Get directory containing profile YAML files.

    Returns:
        Path to profiles directory
    """
    # sourcesheet/config/profile_loader.py -> sourcesheet/config -> sourcesheet -> root
    project_root = Path(__file__).resolve().parent.parent.parent
    return project_root / "configs" / "profiles"


def load_profile(profile_name: str = "default") -> ProfileConfig:
    """Load a configuration profile.

    Args:
        profile_name: Name of profile to load (without .yaml extension)

    Returns:
        ProfileConfig object

    Raises:
        FileNotFoundError: If profile file doesn't exist
        ValueError: If profile file is invalid
    """
    profile_path = get_profiles_dir() / f"{profile_name}.yaml"

    if not profile_path.exists():
        raise FileNotFoundError(f"Profile not found: {profile_name} (expected at {profile_path})")

    try:
        with open(profile_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in profile {profile_name}: {e}") from e

    if not data:
        raise ValueError(f"Profile file is empty: {profile_path}")
    if not isinstance(data, dict):
        raise ValueError(f"Profile {profile_name} must be a mapping")
    return ProfileConfig.from_dict(data)


def list_available_profiles() -> list[str]:
    """List all available profile names."""
    profiles_dir = get_profiles_dir()
    if not profiles_dir.exists():
        return ["default"]
    profiles = [p.stem for p in profiles_dir.glob("*.yaml")]
    return sorted(profiles) if profiles else ["default"]


def get_default_profile() -> ProfileConfig:
    """Get default profile (always available).

    Returns:
        Default ProfileConfig; built-in defaults when no default.yaml exists
    """
    try:
        return load_profile("default")
    except FileNotFoundError:
        return ProfileConfig(name="default", description="Default configuration")
