"""
Reader command package.

Streams census archives (remote or local, gzip or plain), groups
their records into batches and writes them to the compute topic.

The entrypoint is `services.reader.app.main.run_reader`.
"""
