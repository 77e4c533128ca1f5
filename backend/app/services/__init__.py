# Services package init
"""
Catalog Backend — Services Layer
==================================

Service Inventory:
    - FileService:    image validation, storage, path normalization and cleanup
    - ProductService: product CRUD, filter/sort queries, and the ordering of
                      file side effects around each database write
"""
