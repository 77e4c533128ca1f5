# Routes package init
"""
Catalog Backend — API Routes Package
======================================

Route Inventory:
    - products.py: POST   /products          (create, multipart with optional image)
                   GET    /products          (filter and sort)
                   GET    /products/{id}     (single product)
                   PATCH  /products/{id}     (partial update, optional image)
                   DELETE /products/{id}     (delete product and image)
    - uploads.py:  GET    /uploads/{path}    (serve stored images)
    - health.py:   GET    /health            (service health check)

Routes stay thin: parse and validate input, call the service, shape the response.
"""
