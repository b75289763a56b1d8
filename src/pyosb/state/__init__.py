"""State layer.

This package owns the instance/binding map: the lifecycle operations that
mutate it, the blob codec used to persist it, and the diagnostic echo of
the last request/response.
"""
