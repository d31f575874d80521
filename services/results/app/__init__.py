"""
Results service package.

Subcomponents:
- aggregator: per-year frequency table fed from the results topic
- api: HTTP query server over the table

The main service entrypoint is `services.results.app.main.ResultsService`.
"""
