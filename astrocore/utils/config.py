# astrocore/utils/config.py
import os
import yaml

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "..", "..", "config", "defaults.yaml")

# Built-in values used when no YAML file is present
_DEFAULTS = {
    "house_system": "placidus",
    "house_fallback": "whole-sign",
    "bodies": ["sun", "moon", "mercury", "venus", "mars",
               "jupiter", "saturn", "uranus", "neptune", "pluto"],
    "transits": {
        "max_days": 365,
        "workers": 1,
        "timeout_s": None,
        "aspects": ["conjunction", "opposition", "trine", "square"],
        "max_orb": 3.0,
    },
    "returns": {
        "tolerance_deg": 1.0,
        "method": "linear",
    },
    "interpretations": None,
}

# env var -> (dotted key, caster)
_ENV_OVERRIDES = {
    "ASTROCORE_HOUSE_SYSTEM": ("house_system", str),
    "ASTROCORE_MAX_SCAN_DAYS": ("transits.max_days", int),
    "ASTROCORE_SCAN_WORKERS": ("transits.workers", int),
    "ASTROCORE_SCAN_TIMEOUT_S": ("transits.timeout_s", float),
    "ASTROCORE_RETURN_TOLERANCE_DEG": ("returns.tolerance_deg", float),
    "ASTROCORE_INTERPRETATIONS": ("interpretations", str),
}


class AttrDict(dict):
    """Dict that also supports attribute access: cfg.house_system and cfg['house_system'] both work."""
    def __getattr__(self, item):
        try:
            return self[item]
        except KeyError as e:
            raise AttributeError(item) from e
    def __setattr__(self, key, value):
        self[key] = value

def _to_attr(obj):
    if isinstance(obj, dict):
        return AttrDict({k: _to_attr(v) for k, v in obj.items()})
    if isinstance(obj, list):
        return [_to_attr(x) for x in obj]
    return obj

def _merge(base, over):
    out = dict(base)
    for k, v in (over or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out

def _set_dotted(data, dotted, value):
    node = data
    *parents, leaf = dotted.split(".")
    for p in parents:
        node = node.setdefault(p, {})
    node[leaf] = value

def load_config(path=None, env=None):
    """
    Load YAML config from `path` (default: $ASTROCORE_CONFIG or config/defaults.yaml),
    layered over built-in defaults, then apply ASTROCORE_* env overrides.
    Returns an AttrDict for convenient access.
    """
    env = os.environ if env is None else env
    path = path or env.get("ASTROCORE_CONFIG") or DEFAULT_CONFIG_PATH

    data = _merge({}, _DEFAULTS)
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            data = _merge(data, yaml.safe_load(f) or {})

    for var, (dotted, cast) in _ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw not in (None, ""):
            try:
                _set_dotted(data, dotted, cast(raw))
            except ValueError as e:
                raise ValueError(f"{var}={raw!r} is not a valid {cast.__name__}") from e

    return _to_attr(data)

def merge_config(base, overrides):
    """Deep-merge `overrides` into `base`; returns a new AttrDict."""
    return _to_attr(_merge(base, overrides))
