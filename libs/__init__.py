"""Shared libraries of the Pepper chat service.

- common: settings and text helpers
- models: Pydantic models of the Firestore documents
- firebase / firestore: Firebase Admin setup and the collection stores
- caching: key/value stores, thread message cache, ownership registry
- memory: persistent conversation memory
"""
