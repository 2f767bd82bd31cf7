# Infrastructure Layer - adapters for OpenEMR, Redis and delivery channels
