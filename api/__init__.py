"""
API package for the AlgoViz FastAPI backend.

- Algorithm catalog (algorithms.py)
- Sessions, runs, domain edits and playback (playback.py, sessions/)
- System health and info (system.py)
- Settings (app_config.py)
"""
