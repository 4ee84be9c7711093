"""Single-flight task orchestrator with learned progress estimates.

The orchestrator runs one external task at a time (npm scripts, Grunt tasks),
simulates its progress from the duration of the last successful run and stores
the new duration once the task succeeds. Runners, the duration store and the
presentation surface are injected, so the state machine itself only deals with
timers and callbacks on a single event loop.
"""
