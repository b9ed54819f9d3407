"""
Publish — after an artifact is on local disk

- storage.py: optional best-effort S3 upload of published files
- notify.py: announce the world.map URL to game servers and ask them to refetch

Neither step can fail a generation cycle: errors are logged and swallowed
here, after the local publish has completed.
"""
