"""Domain operations for the SDLC server.

Each manager wraps a ``GitLabPlatform`` and exposes async operations that
translate domain requests into platform calls.  Managers raise
``SDLCServerError`` subclasses, never HTTP exceptions -- rendering them is
the app's responsibility.
"""
