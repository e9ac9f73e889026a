"""
entity_directory/entity_types.py

Closed catalog of entity (industry) types.

Each type has a display label and a one-line description. The relevance
scorer matches query terms against all three (value, label, description)
to compute industry compatibility.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict


class EntityType(str, Enum):
    """Industry category of an entity."""
    printing_3d = "3dPrinting"
    ai_machine_learning = "aiMachineLearning"
    biotechnology = "biotechnology"
    blockchain_development = "blockchainDevelopment"
    clean_energy = "cleanEnergy"
    cloud_computing = "cloudComputing"
    cnc_machining = "cncMachining"
    composite_manufacturing = "compositeManufacturing"
    cybersecurity = "cybersecurity"
    drone_technology = "droneTechnology"
    electronic_manufacturing = "electronicManufacturing"
    industrial_design = "industrialDesign"
    iot_development = "iotDevelopment"
    laser_cutting = "laserCutting"
    manufacturing = "manufacturing"
    metal_fabrication = "metalFabrication"
    other = "other"
    plastic_injection_molding = "plasticInjectionMolding"
    precision_engineering = "precisionEngineering"
    quantum_computing = "quantumComputing"
    robotics = "robotics"
    semiconductor_production = "semiconductorProduction"
    smart_materials = "smartMaterials"
    software_development = "softwareDevelopment"
    technology_center = "technologyCenter"
    virtual_reality = "virtualReality"


@dataclass(frozen=True)
class EntityTypeConfig:
    label: str
    description: str


ENTITY_TYPE_CONFIG: Dict[str, EntityTypeConfig] = {
    EntityType.printing_3d.value: EntityTypeConfig("3D Printing", "Additive manufacturing and rapid prototyping"),
    EntityType.ai_machine_learning.value: EntityTypeConfig("AI & Machine Learning", "Artificial intelligence, machine learning and data science"),
    EntityType.biotechnology.value: EntityTypeConfig("Biotechnology", "Life sciences, genomics and bioengineering"),
    EntityType.blockchain_development.value: EntityTypeConfig("Blockchain Development", "Distributed ledgers, smart contracts and web3"),
    EntityType.clean_energy.value: EntityTypeConfig("Clean Energy", "Solar, wind, storage and other renewable energy"),
    EntityType.cloud_computing.value: EntityTypeConfig("Cloud Computing", "Cloud infrastructure, hosting and platform services"),
    EntityType.cnc_machining.value: EntityTypeConfig("CNC Machining", "Computer-controlled milling, turning and machining"),
    EntityType.composite_manufacturing.value: EntityTypeConfig("Composite Manufacturing", "Carbon fiber, fiberglass and composite parts"),
    EntityType.cybersecurity.value: EntityTypeConfig("Cybersecurity", "Security audits, threat detection and data protection"),
    EntityType.drone_technology.value: EntityTypeConfig("Drone Technology", "Unmanned aerial vehicles and aerial services"),
    EntityType.electronic_manufacturing.value: EntityTypeConfig("Electronic Manufacturing", "PCB assembly and electronics production"),
    EntityType.industrial_design.value: EntityTypeConfig("Industrial Design", "Product design, ergonomics and prototyping"),
    EntityType.iot_development.value: EntityTypeConfig("IoT Development", "Connected devices, sensors and embedded systems"),
    EntityType.laser_cutting.value: EntityTypeConfig("Laser Cutting", "Laser cutting, engraving and marking"),
    EntityType.manufacturing.value: EntityTypeConfig("Manufacturing", "General manufacturing and production services"),
    EntityType.metal_fabrication.value: EntityTypeConfig("Metal Fabrication", "Welding, sheet metal and structural fabrication"),
    EntityType.other.value: EntityTypeConfig("Other", "Organizations outside the listed categories"),
    EntityType.plastic_injection_molding.value: EntityTypeConfig("Plastic Injection Molding", "Injection molded plastic parts and tooling"),
    EntityType.precision_engineering.value: EntityTypeConfig("Precision Engineering", "High tolerance engineering and metrology"),
    EntityType.quantum_computing.value: EntityTypeConfig("Quantum Computing", "Quantum hardware, algorithms and research"),
    EntityType.robotics.value: EntityTypeConfig("Robotics", "Industrial robots, automation and robotic systems"),
    EntityType.semiconductor_production.value: EntityTypeConfig("Semiconductor Production", "Chip fabrication, wafers and semiconductor equipment"),
    EntityType.smart_materials.value: EntityTypeConfig("Smart Materials", "Responsive, nano and advanced materials"),
    EntityType.software_development.value: EntityTypeConfig("Software Development", "Custom software, web and mobile applications"),
    EntityType.technology_center.value: EntityTypeConfig("Technology Center", "Innovation hubs, labs and technology parks"),
    EntityType.virtual_reality.value: EntityTypeConfig("Virtual Reality", "Virtual, augmented and mixed reality"),
}

ENTITY_TYPE_VALUES = frozenset(t.value for t in EntityType)


def get_entity_type_config(entity_type: str) -> EntityTypeConfig:
    """Look up label/description for a type value; unknown values map to 'Other'."""
    return ENTITY_TYPE_CONFIG.get(entity_type, ENTITY_TYPE_CONFIG[EntityType.other.value])


def is_valid_entity_type(value: object) -> bool:
    return isinstance(value, str) and value in ENTITY_TYPE_VALUES
