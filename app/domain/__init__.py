"""Domain packages - one per business area (schemas, repository, service, router)"""
