"""
Script: promote_tools package
What: Holds the Python workflow helpers that promote built images between registries.
Doing: Groups CLI entrypoints and shared utility code in one importable package.
Why: Keeps promotion logic readable and testable instead of spreading it across third-party actions.
Goal: Provide a clear, maintainable home for check waiting, registry login, and tag publishing.
"""
