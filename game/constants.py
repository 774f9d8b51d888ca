# game/constants.py
# Default tunables. Every value here can be overridden from configs/defaults.json.

# Physics
GRAVITY = -30.0
JUMP_FORCE = 8.0
JUMP_COOLDOWN = 0.6
MAX_DT = 1.0 / 30.0
GROUND_EPS = 1e-4

# Player body (AABB half extents)
PLAYER_SIZE = 0.5
PLAYER_HEIGHT = 1.2
PLAYER_HALF_SIZE = PLAYER_SIZE * 0.5
PLAYER_HALF_HEIGHT = PLAYER_HEIGHT * 0.5
HP_MAX = 100

# Movement
MOVE_SPEED = 4.0
RUN_MULTIPLIER = 1.7
FACING_THRESHOLD = 0.1
MOVE_EPS = 1e-3

# Arena
WALL_HEIGHT = 1.2
WALL_THICKNESS = 0.4
WALL_MARGIN = 0.2
ARENA_MARGIN = 0.25

# Respawn
FALL_COUNTDOWN = 3.0
DEATH_DELAY = 1.0

# Projectiles
PROJECTILE_SOFT_CAP = 256
PROJECTILE_UPDATE_HZ = 10.0
PROJECTILE_SPAWN_HEIGHT = 0.5
BURST_SPAWN_OFFSET = 0.5       # melee fragments start this far out from the caster
MORTAR_GRAVITY = 20.0

# Bots
BOT_COUNT = 3
BOT_DETECTION_RADIUS = 10.0
BOT_REACQUIRE_RADIUS = 14.0
BOT_KEEP_DISTANCE = 1.0
BOT_SHOOT_RANGE = 10.0
BOT_CHANGE_DIR_MIN = 2.0
BOT_CHANGE_DIR_MAX = 5.0
BOT_SHOOT_INTERVAL_MIN = 1.0
BOT_SHOOT_INTERVAL_MAX = 2.5
BOT_SPAWN_HALF_EXTENT = 7.0
BOT_DEATH_FADE = 1.0

# Network
PLAYER_STATE_HZ = 10.0
RECONNECT_BASE = 1.0
RECONNECT_CAP = 5.0
STALE_REPLICA_SECONDS = 5.0
DEFAULT_PORT = 50007

# Replica smoothing
REPLICA_SNAP_EPS = 0.01
REPLICA_RESET_DIST = 0.1
REPLICA_FRESH_WINDOW = 0.3
REPLICA_VEL_KEEP = 0.7
REPLICA_EXTRAP_LAG = 0.15
REPLICA_EXTRAP_MAX = 0.2

ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

DEFAULT_CHARACTER = "lucy"
CHARACTERS = ("lucy", "herald")
