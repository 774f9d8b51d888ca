# client.py
import sys, json, math, argparse, logging, os
from typing import Dict, Any, Optional

from direct.showbase.ShowBase import ShowBase
from direct.gui.OnscreenText import OnscreenText
from panda3d.core import Point3, Plane, Vec3 as PVec3, DirectionalLight, AmbientLight, LColor
from panda3d.core import CardMaker, TextNode, NodePath, KeyboardButton, TransparencyAttrib, ClockObject

from common import protocol as proto
from common.transport import TcpTransport
from engine import config
from game.actors import ActorKind, AnimKey, Facing
from game.arena import Arena, MODES, BUILTIN_ARENAS, build_arena, load_arenas
from game.bot_ai import DIFFICULTIES
from game.character import InputFrame
from game.characters import BUILTIN_CHARACTERS, load_characters
from game.constants import BOT_COUNT, CHARACTERS, DEFAULT_CHARACTER, DEFAULT_PORT
from game.errors import SessionError, ValidationError
from game.loop import SimulationLoop, build_loop
from game.session import ConnectionState, SessionManager
from game.snapshot import Snapshot
from game.transform import Vec2

log = logging.getLogger("client")

CLIENT_STATE_PATH = os.path.join("configs", "client_state.json")

CHARACTER_COLORS = {
    "lucy":   LColor(0.95, 0.55, 0.75, 1),
    "herald": LColor(0.45, 0.75, 0.95, 1),
}
BOT_TINT = LColor(0.7, 0.7, 0.7, 1)


def to_panda(x: float, y: float, z: float) -> Point3:
    """Game space is y-up with +z toward the camera; panda is z-up."""
    return Point3(x, -z, y)


# ========== Display ==========
class PandaDisplay:
    """
    Renders each Snapshot:
      - billboard cards for actors (tinted by character, dimmed when facing away)
      - boxes for walls, spheres for projectiles
      - third-person follow camera and a small HUD
    """
    def __init__(self, app: ShowBase, arena: Arena):
        self.app = app
        self.root = app.render.attachNewNode("arena")
        self.actor_nodes: Dict[str, NodePath] = {}
        self.actor_labels: Dict[str, TextNode] = {}
        self.projectile_nodes: Dict[str, NodePath] = {}
        self._build_arena(arena)

        self.hud = OnscreenText(text="", pos=(-1.3, 0.9), fg=(1, 1, 1, 1), align=TextNode.ALeft,
                                scale=0.05, mayChange=True)
        self.banner = OnscreenText(text="", pos=(0, 0.2), fg=(1, 0.8, 0.3, 1), align=TextNode.ACenter,
                                   scale=0.09, mayChange=True)

    def _build_arena(self, arena: Arena):
        floor = self.app.loader.loadModel("models/box")
        floor.setScale(arena.size, arena.size, 0.1)
        floor.setPos(-arena.half_size, -arena.half_size, -0.1)
        floor.setColor(0.2, 0.2, 0.22, 1)
        floor.reparentTo(self.root)
        wall_color = LColor(0.55, 0.5, 0.45, 1)
        for wall in arena.walls:
            np = self.app.loader.loadModel("models/box")
            # models/box spans 0..1 on each axis
            np.setScale(wall.w, wall.h, max(0.01, wall.top - wall.bottom))
            np.setPos(wall.cx - wall.w * 0.5, -wall.cz - wall.h * 0.5, wall.bottom)
            np.setColor(wall_color)
            np.reparentTo(self.root)

    # --- actors ---
    def _make_actor(self, view) -> NodePath:
        root = self.root.attachNewNode(f"actor-{view.id}")
        cm = CardMaker(f"sprite-{view.id}")
        cm.setFrame(-0.25, 0.25, 0.0, 1.2)
        card = root.attachNewNode(cm.generate())
        card.setZ(-0.6)
        card.setBillboardPointEye()
        card.setTransparency(TransparencyAttrib.MAlpha)
        label = TextNode(f"label-{view.id}")
        label.setAlign(TextNode.ACenter)
        label_np = root.attachNewNode(label)
        label_np.setScale(0.22)
        label_np.setZ(0.8)
        label_np.setBillboardPointEye()
        self.actor_labels[view.id] = label
        return root

    def _tint(self, view) -> LColor:
        color = LColor(CHARACTER_COLORS.get(view.character, LColor(1, 1, 1, 1)))
        if view.kind is ActorKind.BOT:
            color = LColor(color[0] * BOT_TINT[0], color[1] * BOT_TINT[1], color[2] * BOT_TINT[2], 1)
        if view.facing is Facing.BACK:
            color *= 0.7
            color[3] = 1.0
        if not view.alive:
            color[3] = 0.35
        return color

    def present(self, snap: Snapshot):
        seen = set()
        for view in snap.actors:
            seen.add(view.id)
            np = self.actor_nodes.get(view.id)
            if np is None:
                np = self.actor_nodes[view.id] = self._make_actor(view)
            p = view.pos
            bob = 0.04 * math.sin(snap.time * 14.0) if view.anim_key in (AnimKey.WALK_FRONT, AnimKey.WALK_BACK) else 0.0
            np.setPos(to_panda(p.x, p.y + bob, p.z))
            np.setColorScale(self._tint(view))
            self.actor_labels[view.id].setText(f"{view.id}  {view.hp}/{view.hp_max}")
        for aid in list(self.actor_nodes):
            if aid not in seen:
                self.actor_nodes.pop(aid).removeNode()
                self.actor_labels.pop(aid, None)

        live = set()
        for proj in snap.projectiles:
            live.add(proj.id)
            np = self.projectile_nodes.get(proj.id)
            if np is None:
                np = self.app.loader.loadModel("models/misc/sphere")
                np.reparentTo(self.root)
                np.setScale(max(0.05, proj.radius))
                np.setColor(CHARACTER_COLORS.get(proj.character, LColor(1, 1, 0.4, 1)))
                self.projectile_nodes[proj.id] = np
            np.setPos(to_panda(proj.pos.x, proj.pos.y, proj.pos.z))
        for pid in list(self.projectile_nodes):
            if pid not in live:
                self.projectile_nodes.pop(pid).removeNode()

        me = snap.actor(snap.local_id) if snap.local_id else None
        if me is not None:
            target = to_panda(me.pos.x, me.pos.y, me.pos.z)
            self.app.camera.setPos(target + PVec3(0, -9.0, 7.0))
            self.app.camera.lookAt(target)
        self._update_hud(snap, me)

    def _update_hud(self, snap: Snapshot, me):
        lines = []
        if me is not None:
            lines.append(f"{me.character}  HP {me.hp}/{me.hp_max}")
        if snap.connection is not None:
            room = snap.room_code or "-"
            lines.append(f"{snap.connection}  room {room}")
        if snap.kills:
            lines.append("kills: " + ", ".join(f"{k} {n}" for k, n in snap.kills))
        self.hud.setText("\n".join(lines))
        if me is not None and not me.alive:
            self.banner.setText("Defeated")
        elif snap.fall_countdown is not None:
            self.banner.setText(f"Out of bounds: {max(0.0, snap.fall_countdown):.1f}")
        else:
            self.banner.setText("")


# ========== Input ==========
class KeyboardInput:
    """Polls the keyboard each tick; mouse buttons fire (left) and lob (right) at the ground cursor, E bursts."""
    def __init__(self, app: ShowBase):
        self.app = app
        self.ground = Plane(PVec3(0, 0, 1), Point3(0, 0, 0))
        self._fire = False
        self._lob = False
        app.accept("mouse1", self._set, ["fire", True])
        app.accept("mouse1-up", self._set, ["fire", False])
        app.accept("mouse3", self._set, ["lob", True])
        app.accept("mouse3-up", self._set, ["lob", False])

    def _set(self, what, down):
        setattr(self, "_" + what, down)

    def _down(self, key: str) -> bool:
        return self.app.mouseWatcherNode.isButtonDown(KeyboardButton.asciiKey(key))

    def _aim(self) -> Optional[Vec2]:
        mw = self.app.mouseWatcherNode
        if not mw.hasMouse():
            return None
        near, far = Point3(), Point3()
        self.app.camLens.extrude(mw.getMouse(), near, far)
        render = self.app.render
        hit = Point3()
        if not self.ground.intersectsLine(hit, render.getRelativePoint(self.app.cam, near),
                                          render.getRelativePoint(self.app.cam, far)):
            return None
        return Vec2(hit.x, -hit.y)

    def poll(self) -> InputFrame:
        mw = self.app.mouseWatcherNode
        mx = (1.0 if self._down("d") else 0.0) - (1.0 if self._down("a") else 0.0)
        mz = (1.0 if self._down("s") else 0.0) - (1.0 if self._down("w") else 0.0)
        return InputFrame(
            move=Vec2(mx, mz).clamped(1.0),
            running=mw.isButtonDown(KeyboardButton.shift()),
            jump=mw.isButtonDown(KeyboardButton.space()),
            fire=self._fire,
            lob=self._lob,
            melee=self._down("e"),
            aim=self._aim() if (self._fire or self._lob) else None,
        )


# ========== App ==========
class ArenaApp(ShowBase):
    def __init__(self, loop_factory, session: Optional[SessionManager], game_state: Dict[str, Any],
                 room: Optional[str], create: bool, arena: Arena):
        ShowBase.__init__(self)
        self.set_background_color(0.05, 0.05, 0.07, 1)
        self.disableMouse()

        dlight = DirectionalLight("dlight")
        dlight.setColor(LColor(0.9, 0.9, 0.9, 1))
        dlnp = self.render.attachNewNode(dlight)
        dlnp.setHpr(45, -60, 0)
        self.render.setLight(dlnp)
        alight = AmbientLight("alight")
        alight.setColor(LColor(0.3, 0.3, 0.35, 1))
        self.render.setLight(self.render.attachNewNode(alight))

        self.session = session
        self.game_state = game_state
        self.room = room
        self.create = create
        self._room_requested = False

        self.display = PandaDisplay(self, arena)
        self.input = KeyboardInput(self)
        self.loop: SimulationLoop = loop_factory(self.input, self.display)

        self.accept("1", self.loop.switch_character, ["lucy"])
        self.accept("2", self.loop.switch_character, ["herald"])
        self.accept("escape", self.userExit)

        if session is not None:
            session.connect()
        self.taskMgr.add(self.update_task, "update")

    def _maybe_enter_room(self):
        s = self.session
        if s is None or self._room_requested or s.in_room or s.state is not ConnectionState.CONNECTED:
            return
        if not self.create and not self.room:
            return
        self._room_requested = True
        try:
            if self.create:
                fut = s.create_room(self.game_state)
                fut.add_done_callback(lambda f: self._room_reply(f, "create"))
            else:
                fut = s.join_room(self.room, self.game_state)
                fut.add_done_callback(lambda f: self._room_reply(f, "join"))
        except (ValidationError, SessionError) as e:
            log.error("cannot enter room: %s", e)

    def _room_reply(self, fut, what):
        exc = fut.exception()
        if exc is not None:
            log.error("%s room failed: %s", what, exc)
            self._room_requested = False
            self.create = False
            return
        code = fut.result() if what == "create" else fut.result().get("roomCode")
        log.info("room code: %s", code)

    def update_task(self, task):
        self._maybe_enter_room()
        self.loop.tick(ClockObject.getGlobalClock().getDt())
        return task.cont

    def userExit(self):
        if self.session is not None:
            self.session.disconnect()
        ShowBase.userExit(self)


def _load_client_state(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r") as f:
            return json.load(f)
    except (OSError, ValueError):
        return {}


def _save_client_state(path: str, state: Dict[str, Any]):
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            json.dump(state, f, indent=2)
    except OSError as e:
        log.warning("failed to save client state: %s", e)


def main():
    ap = argparse.ArgumentParser(description="SpriteArena client")
    ap.add_argument("--config", default="configs/defaults.json")
    ap.add_argument("--characters", default="configs/characters.json")
    ap.add_argument("--arenas", default="configs/arenas.json")
    ap.add_argument("--name", default="Player")
    ap.add_argument("--host", default=None)
    ap.add_argument("--port", type=int, default=None)
    ap.add_argument("--room", default=None, help="Room code to join (created on demand)")
    ap.add_argument("--create", action="store_true", help="Create a new room")
    ap.add_argument("--character", choices=CHARACTERS, default=None)
    ap.add_argument("--arena", default=None)
    ap.add_argument("--mode", choices=MODES, default=None)
    ap.add_argument("--bots", type=int, default=None)
    ap.add_argument("--difficulty", choices=sorted(DIFFICULTIES), default=None)
    ap.add_argument("--offline", action="store_true", help="Play without a relay")
    ap.add_argument("--log-level", default="INFO")
    args = ap.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="[%(name)s] %(message)s")

    cfg = config.load(args.config)
    net_cfg = cfg.get("network", {})
    bots_cfg = cfg.get("bots", {})
    state = _load_client_state(CLIENT_STATE_PATH)

    # CLI overrides the remembered choice, which overrides defaults
    character = args.character or state.get("character", DEFAULT_CHARACTER)
    arena_key = args.arena or state.get("arena", "standard")
    mode = args.mode or state.get("mode", "free-play")
    bot_count = args.bots if args.bots is not None else int(state.get("bots", bots_cfg.get("count", BOT_COUNT)))
    difficulty = args.difficulty or state.get("difficulty")

    characters = load_characters(args.characters) if os.path.exists(args.characters) else BUILTIN_CHARACTERS
    arenas = load_arenas(args.arenas) if os.path.exists(args.arenas) else BUILTIN_ARENAS
    try:
        arena = build_arena(arena_key, mode, arenas)
    except ValidationError as e:
        print(f"{e}. Known arenas: {', '.join(sorted(arenas))}")
        sys.exit(2)

    session = None
    if not args.offline:
        host = args.host or net_cfg.get("host", "127.0.0.1")
        port = int(args.port if args.port is not None else net_cfg.get("port", DEFAULT_PORT))
        transport = TcpTransport(host, port, name=args.name,
                                 reconnect_base=float(net_cfg.get("reconnect_base", 1.0)),
                                 reconnect_cap=float(net_cfg.get("reconnect_cap", 5.0)))
        session = SessionManager(transport, cfg=net_cfg)

    def loop_factory(input_provider, display):
        return build_loop(arena, character=character, bot_count=bot_count, difficulty=difficulty,
                          cfg=cfg, characters=characters, session=session,
                          input_provider=input_provider, display=display)

    state.update({"character": character, "arena": arena_key, "mode": mode, "bots": bot_count})
    if difficulty:
        state["difficulty"] = difficulty
    _save_client_state(CLIENT_STATE_PATH, state)

    app = ArenaApp(loop_factory, session, proto.game_state(character, arena_key, mode),
                   room=args.room, create=args.create, arena=arena)
    app.run()


if __name__ == "__main__":
    main()
