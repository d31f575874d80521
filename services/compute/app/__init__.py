"""
Compute service package.

Consumes batches from the compute topic, extracts the housing unit
type of every record and writes one result record per batch.

The main service entrypoint is `services.compute.app.main.ComputeService`.
"""
