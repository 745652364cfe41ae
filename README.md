# brunchrat

This is the core of a small stealth game. You play a rat on a brunch table.
You eat your way through the cake, pancakes, sandwich, bacon and eggs while a
cat circles the table. The cat goes through a fixed cycle. It circles, rises,
looks, and then sinks again. While it looks, the rat must sit behind the
centre of the table as seen from the cat. Otherwise the cat catches the rat
and the game is lost. When every food has been eaten, the game is won.

## Modules

- `brunchrat.chunks`
  - `read_chunk(source, magic, record_format)` reads one chunk from a binary
    stream. A chunk is a four-byte magic, a little-endian `uint32` byte size,
    and then packed records. It returns the records as tuples, unpacked with
    a `struct` format.
  - `write_chunk(target, magic, record_format, records)` writes a chunk in
    the same layout and returns the number of bytes written.
  - `ChunkError` is raised for a short header, a wrong magic, a size that is
    not a whole number of records, or truncated data.
- `brunchrat.scene`
  - The scene parts are `Scene`, `Transform`, `Camera`, `Light`, `LightType`
    and `Drawable`.
  - `Transform` builds 3x4 local/parent/world matrices.
  - `Camera.make_projection()` gives an infinite perspective matrix.
  - `load_scene(path, on_drawable)`, like `Scene.load`, reads a `.scene`
    file. That file holds the chunks `str0`, `xfh0`, `msh0`, `cam0` and
    `lmp0`. For each mesh entry, `on_drawable(scene, transform, name)` is
    called.
  - Non-perspective cameras and unknown lamp types are skipped with a log
    message.
  - Malformed files raise `SceneFormatError`.
  - `Scene.copy()` and `Scene.set(other)` make deep copies, with the parent
    and attachment references remapped into the copy.
  - Quaternion helpers, all `(w, x, y, z)`: `quat_to_mat3`, `quat_multiply`,
    `quat_inverse`, `quat_rotate` and `angle_axis`. There is also
    `infinite_perspective`.
- `brunchrat.audio_files`
  - `load_wav(path)` reads PCM (8/16/24/32-bit) or float (32/64-bit) WAV
    files.
  - It returns 48 kHz mono `float32` samples. Channels are downmixed by
    averaging and other rates are resampled linearly.
  - It raises `ValueError` on bad files.
- `brunchrat.sound`
  - `Sample` holds mono audio. `load_sample(path)` loads `.wav` files.
  - `Ramp` moves a value smoothly to a target.
  - A `Mixer` plays samples:
    - `play` and `loop` use 2D equal-power panning.
    - `play_3d` and `loop_3d` are panned and attenuated relative to
      `mixer.listener`.
  - Each of these returns a `PlayingSample`, which has `set_volume`,
    `set_pan`, `set_position`, `set_half_volume_radius` and `stop`.
  - Other mixer methods are `Mixer.stop_all_samples()` and
    `Mixer.set_volume()`.
  - `Mixer.mix()` returns the next block of 1024 stereo frames as a
    `float32` array of shape `(1024, 2)`.
- `brunchrat.play_mode`
  - `PlayMode(scene, mixer=None, sounds=None, rng=None)` holds the game
    state and rules.
  - The scene must contain transforms named `Cat` and `Rat` and exactly one
    camera.
  - Foods are found by transform name: `cake`, `pancakes`, `sandwich`,
    `bacon`, `egg.001` and their parts.
  - Input goes through `handle_event(event, window_size)` with the events
    `KeyDown`, `KeyUp` (keys `Key.A/D/W/S/ESCAPE`), `MouseButtonDown` and
    `MouseMotion`.
  - Time goes through `update(elapsed)`.
  - `status` becomes `"You Win"` or `"You Lose"`.
  - Sounds come from an optional `GameSounds`.
- `brunchrat.viewer`
  - `OrbitCamera` is a z-up trackball camera. It has `begin_drag`, `drag`
    (tumble, or pan with `shift=True`) and `zoom`, plus `camera_rotation`
    and `camera_position`.
  - `MeshSelector` steps through a mapping of names to `MeshInfo` in name
    order. It uses `select_prev` and `select_next`.
- `brunchrat.png`
  - `load_png(path, origin)` decodes any standard PNG, interlaced ones
    included. It returns `((width, height), pixels)` as RGBA `uint8` of
    shape `(height, width, 4)`.
  - `save_png(path, size, pixels, origin)` writes 8-bit RGBA.
  - `Origin.LOWER_LEFT` puts the bottom row first.
  - Read errors raise `PngError`.
- `brunchrat.data_path`
  - `data_path(suffix)` joins `suffix` onto the directory of the running
    program (`sys.argv[0]`, or the current directory if that is empty).

## Install

```
pip install .
```

## Example

```python
from brunchrat.sound import Mixer, Sample

mixer = Mixer()
beep = Sample([0.5] * 4800)
handle = mixer.play(beep, volume=1.0, pan=-1.0)
block = mixer.mix()        # (1024, 2) float32 stereo frames
handle.stop()
```

Loading a scene:

```python
from brunchrat.scene import load_scene

scene = load_scene("brunch.scene", None)
names = [t.name for t in scene.transforms]
```

Driving the game:

```python
from brunchrat.play_mode import Key, KeyDown, PlayMode

game = PlayMode(scene)
game.handle_event(KeyDown(Key.W), (1920, 1080))
game.update(1 / 60)
print(game.status)
```

## What this package does not do

- It opens no window and draws nothing. There is no renderer, no shader
  handling, no text overlay and no game loop. You supply events to
  `PlayMode` and call `update` yourself.
- It does not play audio on a sound device. `Mixer.mix()` only produces
  sample blocks, and sending them to an output is up to you.
- Only `.wav` audio can be loaded. Opus files are not supported.
- Mesh vertex buffers (`.pnct` files) are not read. `MeshSelector` works
  from `MeshInfo` records that you supply.
- There are no command-line programs.

## Tests

```
pip install .[test]
pytest
```