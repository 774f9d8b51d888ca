from dataclasses import dataclass
from typing import Dict, Optional
import json

from .constants import CHARACTERS, HP_MAX
from .errors import ValidationError


@dataclass(frozen=True)
class ProjectileStats:
    damage: int
    cooldown: float
    radius: float
    lifetime: float = 8.0
    speed: float = 0.0          # direct only
    arc_height: float = 0.0     # lobbed only
    max_range: float = 0.0      # lobbed only
    splash_radius: float = 0.0  # lobbed only, landing hit radius
    count: int = 0              # burst only, fragments per use


@dataclass(frozen=True)
class CharacterStats:
    id: str
    hp_max: int
    direct: ProjectileStats
    lobbed: ProjectileStats
    melee: Optional[ProjectileStats] = None  # radial burst; None when the character has none


def _projectile_stats(cfg: Dict) -> ProjectileStats:
    return ProjectileStats(damage=int(cfg.get('damage', 20)),
                           cooldown=float(cfg.get('cooldown', 0.4)),
                           radius=float(cfg.get('radius', 0.13)),
                           lifetime=float(cfg.get('lifetime', 8.0)),
                           speed=float(cfg.get('speed', 0.0)),
                           arc_height=float(cfg.get('arc_height', 0.0)),
                           max_range=float(cfg.get('max_range', 0.0)),
                           splash_radius=float(cfg.get('splash_radius', 0.0)),
                           count=int(cfg.get('count', 0)))


def parse_characters(data: Dict) -> Dict[str, CharacterStats]:
    characters: Dict[str, CharacterStats] = {}
    for cid, cfg in data.items():
        characters[cid] = CharacterStats(id=cid,
                                         hp_max=int(cfg.get('hp_max', HP_MAX)),
                                         direct=_projectile_stats(cfg.get('direct', {})),
                                         lobbed=_projectile_stats(cfg.get('lobbed', {})),
                                         melee=_projectile_stats(cfg['melee']) if 'melee' in cfg else None)
    return characters


def load_characters(path: str) -> Dict[str, CharacterStats]:
    with open(path, 'r') as f:
        data = json.load(f)
    return parse_characters(data)


BUILTIN_CHARACTERS: Dict[str, CharacterStats] = parse_characters({
    'lucy': {
        'direct': {'damage': 10, 'cooldown': 0.15, 'speed': 12.0, 'radius': 0.08},
        'lobbed': {'damage': 35, 'cooldown': 3.0, 'radius': 0.18,
                   'arc_height': 2.5, 'max_range': 8.0, 'splash_radius': 0.9},
        'melee': {'damage': 8, 'cooldown': 3.0, 'speed': 6.0, 'radius': 0.08,
                  'lifetime': 1.5, 'count': 16},
    },
    'herald': {
        'direct': {'damage': 35, 'cooldown': 1.0, 'speed': 9.0, 'radius': 0.18},
        'lobbed': {'damage': 35, 'cooldown': 6.0, 'radius': 0.25,
                   'arc_height': 4.0, 'max_range': 8.0, 'splash_radius': 1.0},
    },
})


def validate_character(name: str) -> str:
    if name not in CHARACTERS:
        raise ValidationError(f"unknown character {name!r}")
    return name


def get_character(name: str, table: Optional[Dict[str, CharacterStats]] = None) -> CharacterStats:
    validate_character(name)
    stats = (table or BUILTIN_CHARACTERS).get(name)
    if stats is None:
        raise ValidationError(f"no stats for character {name!r}")
    return stats
