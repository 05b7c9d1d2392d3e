r"""Configuration dataclasses which can be loaded from dictionaries and YAML/JSON files."""

from __future__ import annotations

from dataclasses import asdict, dataclass
import json
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Type, TypeVar, Union

import dacite
import yaml


__all__ = (
    "ConvergenceConfig",
    "DataclassConfig",
    "UpdateConfig",
)


PathStr = Union[Path, str]
TDataclassConfig = TypeVar("TDataclassConfig", bound="DataclassConfig")


class DataclassConfig(object):
    r"""Base class of configuration dataclasses."""

    @staticmethod
    def _from_dict_config() -> dacite.Config:
        return dacite.Config(type_hooks={float: float}, cast=[tuple], strict=True)

    @classmethod
    def from_dict(cls: Type[TDataclassConfig], arg: Mapping[str, Any]) -> TDataclassConfig:
        r"""Create configuration from dictionary.

        Integer values of floating point fields are accepted, whereas unknown keys raise an error.

        """
        return dacite.from_dict(cls, dict(arg), config=cls._from_dict_config())

    @classmethod
    def read(
        cls: Type[TDataclassConfig], path: PathStr, section: Optional[str] = None
    ) -> TDataclassConfig:
        r"""Load configuration from YAML or JSON file.

        Args:
            path: Path of configuration file. Files with suffix ``.json`` are parsed as JSON,
                all other files as YAML.
            section: Name of top-level entry which contains this configuration. If ``None``,
                the entire file content is the configuration.

        Returns:
            Configuration dataclass instance.

        """
        path = Path(path).absolute()
        text = path.read_text()
        if path.suffix == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
        if data is None:
            data = {}
        if section:
            if section not in data:
                raise KeyError(f"{cls.__name__}.read() file {path} has no section '{section}'")
            data = data[section] or {}
        if not isinstance(data, dict):
            raise ValueError(f"{cls.__name__}.read() file {path} must contain a mapping")
        return cls.from_dict(data)

    def asdict(self) -> Dict[str, Any]:
        r"""Get dictionary representation of configuration."""
        return asdict(self)

    def write(self, path: PathStr) -> None:
        r"""Save configuration to YAML or JSON file."""
        path = Path(path).absolute()
        data = self.asdict()
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.suffix == ".json":
            path.write_text(json.dumps(_plain(data), indent=4))
        else:
            path.write_text(yaml.safe_dump(_plain(data), sort_keys=False))


def _plain(value: Any) -> Any:
    r"""Convert tuples to lists for serialization."""
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


@dataclass
class UpdateConfig(DataclassConfig):
    r"""Parameters of constrained affine gradient step.

    Attributes:
        angle_limit: Maximum step size times largest absolute gradient of linear component.
        step_down_factor: Step size reduction factor when control points are set.
        shrink_factor: Step size reduction factor without control points.
        max_rotation_step: Maximum absolute change of linear component without control points.
        rotation_rescale: Target maximum change of linear component after rescaling.
        max_translation_step: Maximum absolute change of translation without control points.
        translation_rescale: Target maximum change of translation after rescaling.
        max_retries: Maximum number of rejected candidates before an update diverges.

    """

    angle_limit: float = 0.2
    step_down_factor: float = 0.5
    shrink_factor: float = 0.9
    max_rotation_step: float = 0.1
    rotation_rescale: float = 0.09
    max_translation_step: float = 10.0
    translation_rescale: float = 9.0
    max_retries: int = 200

    def __post_init__(self) -> None:
        for name in ("step_down_factor", "shrink_factor"):
            value = getattr(self, name)
            if not 0 < value < 1:
                raise ValueError(f"{type(self).__name__}() '{name}' must be in open interval (0, 1)")
        for name in ("angle_limit", "max_rotation_step", "max_translation_step"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{type(self).__name__}() '{name}' must be positive")
        if not 0 < self.rotation_rescale <= self.max_rotation_step:
            raise ValueError(
                f"{type(self).__name__}() 'rotation_rescale' must be in (0, max_rotation_step]"
            )
        if not 0 < self.translation_rescale <= self.max_translation_step:
            raise ValueError(
                f"{type(self).__name__}() 'translation_rescale' must be in (0, max_translation_step]"
            )
        if self.max_retries < 1:
            raise ValueError(f"{type(self).__name__}() 'max_retries' must be positive")


@dataclass
class ConvergenceConfig(DataclassConfig):
    r"""Parameters of double exponential smoothing based convergence check."""

    slope_threshold: Tuple[float, ...] = (1e-4,)
    alpha: float = 0.8
    beta: float = 0.55
    buffer_len: int = 4
    min_iter: int = 5
