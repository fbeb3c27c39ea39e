
"""
String Ensemble - a controller for distributed bowed-string synthesis.

One controller holds the performance: a chord, per-note expressions
(vibrato, tremolo, trill) and global timbre parameters. Any number of peers
connect over WebSockets, each rendering a single voice. The controller hands
every peer an individualized, self-contained program so that together they
sound the chord.

What it does:

- **Fair note distribution.** Round-robin, random, balanced,
  randomized-balanced and root/fifth-weighted strategies spread the chord
  over however many peers are connected, recomputed on every chord or
  peer-set change.
- **Fresh programs every send.** Each peer's program is resolved from the
  base parameters, its note, its expression and a harmonic ratio drawn
  from the selected numerator/denominator sets, so a section never moves
  in lockstep.
- **Humanized transitions.** Stagger and duration spread scatter start
  times and glide lengths in log space, equally likely to be shorter or
  longer.
- **Silence by default.** A peer without a note gets ``power: False``. A
  late joiner catches up with an instant transition, and only after the
  performer has sent something.
- **Banks.** Save and recall whole performances; peers fetch their part of
  a bank on demand.
- **Control surfaces.** OSC for sending, power, strategy, banks and
  parameters; a MIDI keyboard for chord entry.

Minimal example:

```python
import ensemble

controller = ensemble.Controller(ensemble.load_config("config.yaml"))
controller.run()
```

Or from the command line: ``python -m ensemble config.yaml``.
"""

import ensemble.config
import ensemble.controller
import ensemble.coordinator
import ensemble.notes


Controller = ensemble.controller.Controller
ControllerConfig = ensemble.config.ControllerConfig
load_config = ensemble.config.load_config
Note = ensemble.notes.Note
BroadcastError = ensemble.coordinator.BroadcastError
