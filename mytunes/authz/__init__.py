"""Authorization layer: who may list, create, read and delete which playlist.

Decisions are plain values (Allowed / Denied / NotFound); the HTTP layer maps
them to 200 / 403 / 404.
"""
