"""auth/ -- Authentication package for SafeHaven.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, contacts/, or cache/.
api/ imports from auth/, not the other way around.
"""
