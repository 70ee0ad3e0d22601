# Flatban: a filesystem-backed task board
#
# Components:
#   schema.py   - Typed documents (BoardConfig, BoardIndex, TaskEntry, TaskRecord)
#   errors.py   - Error taxonomy shared by every layer
#   codec.py    - Task file encode/decode, template rendering, history lines
#   ids.py      - Collision-checked task identifier generator
#   config.py   - Board config store (.flatban/config.yaml)
#   store.py    - Index cache (.flatban/index.json)
#   sync.py     - Reconciliation: full rebuild and staleness detection
#   board.py    - Mutation operations (init, create, move, delete)
#   events.py   - Change events and listener fan-out
#   watcher.py  - Debounced filesystem watch feeding the fan-out
#   settings.py - Runtime settings for serve/watch
#   server.py   - Flask live viewer and JSON API
#   render.py   - Terminal tables and board view
#   cli.py      - `flatban` command line

__version__ = "1.0.0"
