"""
Service — long-running territory map server

- config.py: TerritoryConfig loaded from config/params.yaml
- workers.py: polling tile / game workers gated on the snapshot fingerprint
- server.py: FastAPI static file server and process entry point
"""
