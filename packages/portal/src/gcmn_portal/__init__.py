"""The GCMN Library portal application layer.

LibraryPortal (app.py) is the object injected at the application root. It
wires the provider client, the data client, the change feed and the Session
Store together, and hands out admin mirrors behind the capability gate. The
remaining modules hold the public forms (registration, card application,
contact, donation) and the catalog filters.
"""
