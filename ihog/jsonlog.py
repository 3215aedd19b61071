"""
One-line JSON event records for the command line.

    {"ts": 1640995200.0, "event": "invert_done", "out": "im.npy", "shape": [56, 56, 3, 1]}
"""

import json, sys, time

def log(event: str, stream=None, **fields):
    rec = {"ts": time.time(), "event": event}
    rec.update(fields)
    stream = stream or sys.stdout
    stream.write(json.dumps(rec, default=str) + "\n")
    stream.flush()
