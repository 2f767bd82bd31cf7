# Infrastructure - external systems
