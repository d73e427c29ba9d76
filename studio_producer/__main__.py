"""Entry point for `python -m studio_producer`.

Delegates to `python -m studio_producer.cli`, which runs one production.
"""
import runpy
runpy.run_module("studio_producer.cli", run_name="__main__", alter_sys=True)
