"""Game rules: a rat eats brunch on a table while a cat circles and checks."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

import numpy as np

from .scene import Scene, Transform, angle_axis, quat_multiply
from .sound import DEFAULT_RAMP, Mixer, PlayingSample, Sample

BUTTON_LEFT = 1

PLAYER_SPEED = 30.0
EATING_SPEED = 20.0
CAT_ANGLE_SPEED = 30.0

# name -> (food slot, reach radius) for the transform that anchors each food
_FOOD_ANCHORS = {
    "cake": (0, 5.0),
    "pancakes": (1, 10.0),
    "sandwich": (2, 10.0),
    "bacon": (3, 10.0),
    "egg.001": (4, 10.0),
}
# name -> food slot for transforms that disappear together with a food
_FOOD_PARTS = {
    "egg": 3,
    "bacon.001": 3,
    "egg.002": 4,
    "bacon.002": 4,
}
_FOOD_SLOTS = 5


class Key(Enum):
    A = "a"
    D = "d"
    W = "w"
    S = "s"
    ESCAPE = "escape"


@dataclass(frozen=True)
class KeyDown:
    key: Key


@dataclass(frozen=True)
class KeyUp:
    key: Key


@dataclass(frozen=True)
class MouseButtonDown:
    button: int = BUTTON_LEFT


@dataclass(frozen=True)
class MouseMotion:
    xrel: float
    yrel: float


Event = Union[KeyDown, KeyUp, MouseButtonDown, MouseMotion]


@dataclass
class Button:
    """Input state of one key."""

    downs: int = 0
    pressed: bool = False


@dataclass(eq=False)
class Food:
    """A food item the rat can eat; its transforms are lifted away when finished."""

    position: Optional[np.ndarray] = None
    size: float = 0.0
    life: float = 100.0
    targets: list[Transform] = field(default_factory=list)


@dataclass
class GameSounds:
    """Samples used by the game; any left as None is silent."""

    bgm: Optional[Sample] = None
    cat_meow: Optional[Sample] = None
    cat_attack: Optional[Sample] = None
    eat: Optional[Sample] = None
    victory: Optional[Sample] = None
    rat_death: Optional[Sample] = None


class PlayMode:
    """State and rules of the game, independent of windowing and drawing."""

    def __init__(
        self,
        scene: Scene,
        mixer: Optional[Mixer] = None,
        sounds: Optional[GameSounds] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.scene = scene.copy()
        self.mixer = mixer if mixer is not None else Mixer()
        self.sounds = sounds if sounds is not None else GameSounds()
        self.rng = rng if rng is not None else random.Random()

        self.left = Button()
        self.right = Button()
        self.up = Button()
        self.down = Button()
        self._key_buttons = {
            Key.A: self.left,
            Key.D: self.right,
            Key.W: self.up,
            Key.S: self.down,
        }

        self.table_size = np.array([35.0, 20.0])
        self.rat_size = 3.0
        self.block_size = 5.0

        cat = rat = None
        slots = [Food() for _ in range(_FOOD_SLOTS)]
        for transform in self.scene.transforms:
            if transform.name == "Cat":
                cat = transform
            elif transform.name == "Rat":
                rat = transform
            elif transform.name in _FOOD_ANCHORS:
                slot, size = _FOOD_ANCHORS[transform.name]
                slots[slot].position = transform.position.copy()
                slots[slot].size = size
                slots[slot].targets.append(transform)
            elif transform.name in _FOOD_PARTS:
                slots[_FOOD_PARTS[transform.name]].targets.append(transform)
        if cat is None:
            raise ValueError("scene has no 'Cat' transform")
        if rat is None:
            raise ValueError("scene has no 'Rat' transform")
        self.cat: Transform = cat
        self.rat: Transform = rat
        self.foods = [food for food in slots if food.position is not None]

        if len(self.scene.cameras) != 1:
            raise ValueError(
                "Expecting scene to have exactly one camera, but it has "
                f"{len(self.scene.cameras)}"
            )
        self.camera = self.scene.cameras[0]

        self.num_food = len(self.foods)
        self.target: Optional[Food] = None
        self.try_eating = False
        self.is_caught = False
        self.relative_mouse = False

        self.check_status = 0
        self.check_timer = 5.0
        self.angle = 0.0
        self.death_timer = 0.0
        self.cat_pos_death = np.zeros(3)
        self.status = ""

        self.eat_loop: Optional[PlayingSample] = None
        self.bgm_loop: Optional[PlayingSample] = None
        if self.sounds.bgm is not None:
            self.bgm_loop = self.mixer.loop(self.sounds.bgm, 1.0, 0.0)

    # ------------------------------------------------------------ input

    def handle_event(self, event: Event, window_size) -> bool:
        """Apply one input event; return True if it was consumed."""
        if isinstance(event, KeyDown):
            if event.key is Key.ESCAPE:
                self.relative_mouse = False
                return True
            button = self._key_buttons.get(event.key)
            if button is not None:
                button.downs += 1
                button.pressed = True
                return True
        elif isinstance(event, KeyUp):
            button = self._key_buttons.get(event.key)
            if button is not None:
                button.pressed = False
                return True
        elif isinstance(event, MouseButtonDown):
            if not self.relative_mouse:
                self.relative_mouse = True
                return True
            if event.button == BUTTON_LEFT:
                self.try_eating = True
        elif isinstance(event, MouseMotion):
            if self.relative_mouse:
                motion_x = event.xrel / float(window_size[1])
                turn = angle_axis(-motion_x * self.camera.fovy, (0.0, 1.0, 0.0))
                rotation = quat_multiply(self.rat.rotation, turn)
                self.rat.rotation = rotation / np.linalg.norm(rotation)
                return True
        return False

    # ------------------------------------------------------------ simulation

    def update(self, elapsed: float) -> None:
        """Advance the game by ``elapsed`` seconds."""
        if self.is_caught:
            self.death_timer += elapsed
            self.cat.position = self.cat_pos_death + (
                self.rat.position - self.cat_pos_death
            ) * min(self.death_timer, 1.0)
            self.status = "You Lose"
            return

        if self.num_food == 0:
            self.status = "You Win"
            return

        if self.target is None:
            self._move_rat(elapsed)

        right = -self.rat.make_local_to_parent()[:, 2]
        self.mixer.listener.set_position_right(self.rat.position, right, DEFAULT_RAMP)

        self._eat(elapsed)
        self._cat_behavior(elapsed)

        for button in (self.left, self.right, self.up, self.down):
            button.downs = 0

    def _move_rat(self, elapsed: float) -> None:
        move = np.zeros(2)
        if self.left.pressed and not self.right.pressed:
            move[0] = -1.0
        if not self.left.pressed and self.right.pressed:
            move[0] = 1.0
        if self.down.pressed and not self.up.pressed:
            move[1] = -1.0
        if not self.down.pressed and self.up.pressed:
            move[1] = 1.0
        if move.any():
            move = move / np.linalg.norm(move) * PLAYER_SPEED * elapsed

        frame = self.rat.make_local_to_parent()
        right = -frame[:, 2]
        forward = -frame[:, 0]
        position = self.rat.position + move[0] * right + move[1] * forward

        limit_x, limit_y = self.table_size - self.rat_size
        position[0] = min(max(position[0], -limit_x), limit_x)
        position[1] = min(max(position[1], -limit_y), limit_y)

        flat = position[:2]
        distance = float(np.linalg.norm(flat))
        reach = self.rat_size + self.block_size
        if distance < reach:
            direction = flat / distance if distance > 0.0 else np.array([1.0, 0.0])
            position[:2] = direction * reach
        self.rat.position = position

    def _stop_eat_loop(self) -> None:
        if self.eat_loop is not None:
            self.eat_loop.stop()

    def _eat(self, elapsed: float) -> None:
        if self.target is not None:
            self.target.life -= EATING_SPEED * elapsed
            if self.target.life <= 0.0:
                for transform in self.target.targets:
                    transform.position[2] += 100.0
                self.num_food -= 1
                if self.num_food == 0 and self.sounds.victory is not None:
                    self.mixer.play(self.sounds.victory, 1.0, 0.0)
                self._stop_eat_loop()
                self.target = None
            if self.try_eating:
                self._stop_eat_loop()
                self.target = None
        elif self.try_eating:
            for food in self.foods:
                near = np.linalg.norm(self.rat.position - food.position) <= food.size
                if near and food.life > 0.0:
                    self.target = food
                    if self.sounds.eat is not None:
                        self.eat_loop = self.mixer.loop(self.sounds.eat, 1.0, 0.0)
                    break
        self.try_eating = False

    def _cat_behavior(self, elapsed: float) -> None:
        self.check_timer -= elapsed
        if self.check_timer < 0.0:
            if self.check_status == 0:
                if self.sounds.cat_meow is not None:
                    self.mixer.play_3d(self.sounds.cat_meow, 1.0, self.cat.position, 20.0)
                self.check_timer = 3.0
            elif self.check_status == 1:
                self.check_timer = 5.0
            elif self.check_status == 2:
                self.check_timer = 3.0
            elif self.check_status == 3:
                self.check_timer = float(self.rng.randrange(3, 8))
            self.check_status = (self.check_status + 1) % 4

        if self.check_status == 0:
            self.angle += CAT_ANGLE_SPEED * elapsed
            if self.angle > 360.0:
                self.angle -= 360.0
            radians = math.radians(self.angle)
            x = min(max(60.0 * math.sin(radians), -40.0), 40.0)
            y = min(max(60.0 * math.cos(radians), -30.0), 30.0)
            self.cat.position = np.array([x, y, 0.0])
            self.cat.rotation = angle_axis(-radians, (0.0, 0.0, 1.0))
        elif self.check_status == 1:
            self.cat.position[2] = 36.0 - 12.0 * self.check_timer
        elif self.check_status == 2:
            if self._rat_is_seen():
                if self.sounds.cat_attack is not None:
                    self.mixer.play(self.sounds.cat_attack, 1.0, 0.0)
                if self.sounds.rat_death is not None:
                    self.mixer.play(self.sounds.rat_death, 1.0, 0.0)
                self.cat_pos_death = self.cat.position.copy()
                self.is_caught = True
        elif self.check_status == 3:
            self.cat.position[2] = 12.0 * self.check_timer

    def _rat_is_seen(self) -> bool:
        cat_coord = self.cat.position[:2]
        rat_coord = self.rat.position[:2]
        cat_distance = float(np.linalg.norm(cat_coord))
        if cat_distance == 0.0:
            return False
        toward = cat_coord / cat_distance
        direction = cat_coord - rat_coord
        along = float(np.dot(direction, toward))
        offset = float(np.linalg.norm(direction - along * toward))
        return along < cat_distance or offset > 4.0