"""Service modules"""
from .factory import InMemoryDeployment, build_price_source, deploy_in_memory
from .scenario import ScenarioRunner, load_scenario, to_base_units

__all__ = [
    "InMemoryDeployment",
    "ScenarioRunner",
    "build_price_source",
    "deploy_in_memory",
    "load_scenario",
    "to_base_units",
]
