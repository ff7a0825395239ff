from __future__ import annotations

SPECIALTIES = ("Informática", "Electricidad", "Administración")

COURSES_BY_SPECIALTY: dict[str, tuple[str, ...]] = {
    "Informática": (
        "Programación Web",
        "Base de Datos",
        "Redes de Computadoras",
        "Sistemas Operativos",
        "Desarrollo Móvil",
        "Ingeniería de Software",
        "Inteligencia Artificial",
        "Seguridad Informática",
    ),
    "Electricidad": (
        "Circuitos Eléctricos",
        "Electrónica Analógica",
        "Electrónica Digital",
        "Máquinas Eléctricas",
        "Sistemas de Potencia",
        "Control Automático",
        "Instalaciones Eléctricas",
        "Energías Renovables",
    ),
    "Administración": (
        "Contabilidad General",
        "Gestión Empresarial",
        "Marketing Digital",
        "Finanzas Corporativas",
        "Recursos Humanos",
        "Emprendimiento",
        "Administración de Proyectos",
        "Economía Empresarial",
    ),
}

def courses_for(specialty: str) -> tuple[str, ...]:
    return COURSES_BY_SPECIALTY.get(specialty, ())

def is_valid_combination(specialty: str, course: str) -> bool:
    return course in courses_for(specialty)
