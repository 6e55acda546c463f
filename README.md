# runevision

Tracking and aiming for rotating rune targets. The package starts from the five image
keypoints of a detected rune, which are the R tag followed by the four armour corners.
From these it produces a gimbal command.

## What is in the package

- `runevision.rune_solver`: `RuneSolver` ties the pipeline together. It solves the rune
  pose from a `RuneTarget` with a `PnPSolver`, then filters the centre position and yaw
  with an `ExtendedKalmanFilter`. It keeps a continuous blade angle and handles blade
  switches in steps of 72°. It feeds the angle to a `CurveFitter` and moves through the
  `TrackerState` values `LOST`, `DETECTING` and `TRACKING`.
  - `predict_target(timestamp)` returns the predicted angle and the armour position.
  - `solve_gimbal_cmd(position)` returns a `GimbalCmd`, which holds yaw and pitch in
    degrees, their differences from the current gimbal orientation, the distance, and
    `fire_advice`.
  - Settings live in `RuneSolverParams`.
- `runevision.rune_model`: holds the rune constants, such as `RUNE_OBJECT_POINTS`,
  `ARM_LENGTH` and the distance limits. It also has `MotionType`, `Direction`,
  `small_rune_curve` (constant speed) and `big_rune_curve` (sinusoidal speed).
- `runevision.curve_fitter`: `CurveFitter` fits the rotation angle over time with bounded,
  Cauchy-robust least squares, running in a background thread.
  - Fitting starts once 50 samples are held, and the fitter keeps at most 500.
  - With `set_auto_type_determined(True)` it fits both curves and keeps the one with the
    lower cost.
- `runevision.pnp`: `PnPSolver` estimates poses from 2D–3D correspondences for a pinhole
  camera with radial and tangential distortion. It also offers `project_points`,
  `calculate_reprojection_error` and `calculate_distance_to_center`.
- `runevision.kalman`: `ExtendedKalmanFilter` takes Jacobians that you supply, or
  computes them numerically.
- `runevision.particle_filter`: `ParticleFilter` weights particles with a Gaussian
  likelihood. It resamples when fewer than half the particles are effective.
- `runevision.trajectory`: `create_compensator("ideal")` returns an `IdealCompensator`
  and `create_compensator("resistance")` returns a `ResistanceCompensator`. Any other name
  raises `ValueError`. Both compensators correct pitch for bullet drop.
- `runevision.manual_compensator`: `ManualCompensator` holds fixed pitch/yaw offsets in
  degrees, looked up by distance and height region.
- `runevision.geometry`: provides Euler angle conversions (`EulerOrder`,
  `euler_to_matrix`, `matrix_to_euler`, `rpy_from_matrix`, `get_rpy`). It also has
  `axis_angle_matrix`, `rodrigues` and angle normalisation.
- `runevision.url_resolver`: resolves `file:///` and `package://` URLs, with `${ROS_HOME}`
  substitution.
- `runevision.logger`: named loggers that append HTML-coloured markdown log files and
  print coloured lines to the console.

## What it does not do

The package does not detect runes in images. It runs no neural network, decodes no
detector output and does no image processing. You supply the keypoints as a `RuneTarget`.
It is not a node or service either: there are no message subscriptions, no publishers and
no command-line program. Two transforms come from callables that you pass to
`RuneSolver`:

- the transform from camera to odom;
- the gimbal orientation.

## Installation

```
pip install runevision
```

To run the tests as well:

```
pip install "runevision[test]"
pytest
```

## Examples

### Tracking and aiming

```python
from runevision.pnp import PnPSolver
from runevision.rune_solver import RuneSolver, RuneSolverParams, RuneTarget, TrackerState

camera = PnPSolver([1200, 0, 640, 0, 1200, 512, 0, 0, 1], [0, 0, 0, 0, 0])
with RuneSolver(RuneSolverParams(bullet_speed=28.0), pnp_solver=camera) as solver:
    for target in targets:          # RuneTarget(stamp=..., is_lost=False, pts=[...])
        if solver.tracker_state is TrackerState.LOST:
            solver.init(target)
        else:
            solver.update(target)
    if solver.tracker_state is TrackerState.TRACKING:
        angle, position = solver.predict_target(now + 0.1)
        cmd = solver.solve_gimbal_cmd(position)
```

### Ballistic compensation

`compensate` returns the corrected pitch in radians. It returns `None` when no pitch
within range hits the target.

```python
from runevision.trajectory import create_compensator

compensator = create_compensator("ideal")
compensator.velocity = 28.0
pitch = compensator.compensate((6.0, 0.0, 1.0))
flying_time = compensator.get_flying_time((6.0, 0.0, 1.0))
```

### Manual offsets

Each rule is a string of six numbers:
`dist_low dist_high height_low height_high pitch_offset yaw_offset`.

```python
from runevision.manual_compensator import ManualCompensator

offsets = ManualCompensator()
offsets.update_map_flow(["0 5 -1 1 0.5 0.2"])
pitch_deg, yaw_deg = offsets.angle_hard_correct(3.0, 0.0)
```

### Fitting the rotation curve

```python
from runevision.curve_fitter import CurveFitter
from runevision.rune_model import MotionType

with CurveFitter(MotionType.UNKNOWN) as fitter:
    fitter.set_auto_type_determined(True)
    for time, angle in samples:
        fitter.update(time, angle)
    if fitter.status_verified():
        future_angle = fitter.predict(t_future)
        print(fitter.debug_text())
```

### Logging

```python
from runevision.logger import LogLevel, LogOptions, get_logger, register_logger

register_logger("rune_solver", "~/vision-log", LogLevel.INFO,
                LogOptions.DATE_DIR | LogOptions.DATE_SUFFIX)
get_logger("rune_solver").info("Fitting time: {} ms", 12)
```

If you ask `get_logger` for a name that was never registered, it raises
`LoggerNotFoundError`.