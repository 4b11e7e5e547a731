from idle_nudge.main import run

run()
