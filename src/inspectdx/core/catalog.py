"""
InspectDx Knowledge Catalog

Static, versioned inspection knowledge for the Leopard 2 family:
inspection sections with their checkpoints and common defects, major
component records, and the NATO AJP-4 / MTU maintenance interval plan.

This is the source data for seeding the vector index; the running
pipeline reads it back through the index, not from here.
"""

from typing import Dict, List

from inspectdx.core.engine import (
    ComponentFailure,
    ComponentRecord,
    MaintenanceTask,
    MonitoringPoint,
)

CATALOG_VERSION = "2025.1"


# =============================================================================
# Inspection Sections & Checkpoints
# =============================================================================

INSPECTION_SECTIONS: List[dict] = [
    {
        "id": "A",
        "name": "Antrieb und Motorraum",
        "checkpoints": [
            {
                "number": 1,
                "name": "Motorölstand prüfen",
                "description": "Ölstand am Messstab bei stehendem, waagerechtem Fahrzeug ablesen.",
                "type": "visual_check",
                "expected_value": "Ölstand zwischen MIN und MAX",
                "tools_required": ["Messstab", "Putzlappen"],
                "estimated_time_min": 5,
                "responsible_role": "driver",
                "maintenance_level": "L1",
                "component_id": "mtu_mb873",
                "tasks": [
                    {"step": 1, "description": "Motor abstellen und 5 Minuten warten"},
                    {"step": 2, "description": "Messstab ziehen, abwischen, erneut einstecken"},
                    {"step": 3, "description": "Ölstand ablesen und dokumentieren"},
                ],
                "common_defects": [
                    {
                        "description": "Motorölstand unter Minimum",
                        "priority": "high",
                        "indicators": ["Ölstand unter MIN-Markierung", "Öldruckwarnung im Fahrerdisplay"],
                        "action": "Öl nachfüllen und Motor auf Leckagen prüfen",
                    },
                ],
            },
            {
                "number": 2,
                "name": "Kühlmittelstand und Kühler prüfen",
                "description": "Kühlmittelstand im Ausgleichsbehälter und Kühlerlamellen auf Verschmutzung prüfen.",
                "type": "visual_check",
                "expected_value": "Kühlmittel zwischen MIN und MAX, Lamellen frei",
                "tools_required": ["Taschenlampe"],
                "estimated_time_min": 10,
                "responsible_role": "driver",
                "maintenance_level": "L1",
                "component_id": "mtu_mb873",
                "tasks": [
                    {"step": 1, "description": "Ausgleichsbehälter nur bei kaltem Motor öffnen"},
                    {"step": 2, "description": "Kühlmittelstand ablesen"},
                    {"step": 3, "description": "Kühlerlamellen auf Schlamm und Fremdkörper prüfen"},
                ],
                "common_defects": [
                    {
                        "description": "Kühlmittelverlust mit Überhitzungsgefahr",
                        "priority": "high",
                        "indicators": ["Kühlmittelstand unter MIN", "Kühlmitteltemperatur steigt schnell an", "Motor überhitzt"],
                        "action": "Kühlsystem abdrücken, Leckage lokalisieren, Fahrzeug nicht unter Last betreiben",
                    },
                    {
                        "description": "Kühlerlamellen verschmutzt",
                        "priority": "medium",
                        "indicators": ["Schlammablagerungen an den Lamellen", "Öltemperatur leicht erhöht"],
                        "action": "Kühler mit Druckluft von innen nach außen reinigen",
                    },
                ],
            },
            {
                "number": 3,
                "name": "Luftfilter Sichtprüfung",
                "description": "Vorabscheider und Luftfilteranzeige prüfen.",
                "type": "visual_check",
                "expected_value": "Filteranzeige im grünen Bereich",
                "tools_required": [],
                "estimated_time_min": 5,
                "responsible_role": "driver",
                "maintenance_level": "L1",
                "component_id": "mtu_mb873",
                "tasks": [],
                "common_defects": [
                    {
                        "description": "Luftfilter stark verschmutzt",
                        "priority": "medium",
                        "indicators": ["Filteranzeige rot", "Leistungsverlust", "Schwarzer Rauch"],
                        "action": "Vorabscheider leeren, Filter reinigen oder tauschen",
                    },
                ],
            },
            {
                "number": 4,
                "name": "Getriebeölstand prüfen",
                "description": "Getriebeölstand bei betriebswarmem Getriebe im Leerlauf prüfen.",
                "type": "inspection_action",
                "expected_value": "Ölstand im Bereich HOT",
                "tools_required": ["Messstab"],
                "estimated_time_min": 10,
                "responsible_role": "driver",
                "maintenance_level": "L1",
                "component_id": "renk_hswl354",
                "tasks": [
                    {"step": 1, "description": "Getriebe auf Betriebstemperatur bringen"},
                    {"step": 2, "description": "Ölstand im Leerlauf ablesen"},
                ],
                "common_defects": [
                    {
                        "description": "Getriebeölleckage an Wellendichtringen",
                        "priority": "high",
                        "indicators": ["Ölflecken unter dem Fahrzeug", "Getriebeöltemperatur erhöht"],
                        "action": "Dichtringe prüfen lassen, Ölstand nachfüllen",
                    },
                ],
            },
        ],
    },
    {
        "id": "B",
        "name": "Laufwerk, Ketten und Bremsen",
        "checkpoints": [
            {
                "number": 5,
                "name": "Kettenspannung prüfen",
                "description": "Durchhang der Kette zwischen erster und zweiter Stützrolle messen.",
                "type": "measurement",
                "expected_value": {"description": "Durchhang 30 bis 50 mm", "unit": "mm", "min": 30, "max": 50},
                "tools_required": ["Maßband", "Kettenspannwerkzeug"],
                "estimated_time_min": 15,
                "responsible_role": "driver",
                "maintenance_level": "L1",
                "component_id": None,
                "tasks": [
                    {"step": 1, "description": "Fahrzeug auf ebenem Untergrund abstellen"},
                    {"step": 2, "description": "Durchhang an beiden Ketten messen"},
                    {"step": 3, "description": "Bei Abweichung Kettenspanner nachstellen"},
                ],
                "common_defects": [
                    {
                        "description": "Kettenspannung am Grenzwert",
                        "priority": "medium",
                        "indicators": ["Durchhang über 50 mm", "Kette schlägt beim Fahren"],
                        "action": "Kette nachspannen und Verschleiß der Kettenbolzen messen",
                    },
                ],
            },
            {
                "number": 6,
                "name": "Laufrollen und Bandagen prüfen",
                "description": "Laufrollen auf Bandagenschäden und Lagerspiel prüfen.",
                "type": "visual_check",
                "expected_value": "Bandagen ohne Risse, Rollen ohne Spiel",
                "tools_required": ["Taschenlampe"],
                "estimated_time_min": 15,
                "responsible_role": "loader",
                "maintenance_level": "L1",
                "component_id": None,
                "tasks": [],
                "common_defects": [
                    {
                        "description": "Laufrollenbandage gerissen",
                        "priority": "high",
                        "indicators": ["Gummiteile fehlen", "Rolle läuft unrund"],
                        "action": "Laufrolle vor nächster Ausfahrt tauschen",
                    },
                ],
            },
            {
                "number": 7,
                "name": "Bremsanlage Funktionsprüfung",
                "description": "Betriebs- und Feststellbremse bei Schrittgeschwindigkeit prüfen.",
                "type": "functional_test",
                "expected_value": "Fahrzeug kommt geradlinig zum Stillstand",
                "tools_required": [],
                "estimated_time_min": 10,
                "responsible_role": "driver",
                "maintenance_level": "L1",
                "component_id": None,
                "tasks": [],
                "common_defects": [
                    {
                        "description": "Bremswirkung ausgefallen oder Bremse blockiert",
                        "priority": "critical",
                        "indicators": ["Fahrzeug bremst nicht", "Bremse blockiert einseitig"],
                        "action": "Fahrzeug sofort stilllegen, Instandsetzung anfordern",
                    },
                ],
            },
        ],
    },
    {
        "id": "C",
        "name": "Turm und Waffenanlage",
        "checkpoints": [
            {
                "number": 8,
                "name": "Turmdrehkranz Funktionsprüfung",
                "description": "Turm über den vollen Schwenkbereich in beiden Richtungen drehen.",
                "type": "functional_test",
                "expected_value": "Gleichmäßige Drehung ohne Geräusche",
                "tools_required": [],
                "estimated_time_min": 10,
                "responsible_role": "gunner",
                "maintenance_level": "L1",
                "component_id": "turmdrehkranz",
                "tasks": [
                    {"step": 1, "description": "Schwenkbereich auf Hindernisse prüfen"},
                    {"step": 2, "description": "Turm elektrisch und von Hand schwenken"},
                ],
                "common_defects": [
                    {
                        "description": "Turmdrehkranz blockiert",
                        "priority": "critical",
                        "indicators": ["Turm lässt sich nicht drehen", "Fremdkörper im Drehkranz"],
                        "action": "Turm sichern, Fremdkörper entfernen lassen, Waffenanlage nicht benutzen",
                    },
                ],
            },
            {
                "number": 9,
                "name": "Richtantrieb Hydraulik prüfen",
                "description": "Hydrauliksystem des Richtantriebs auf Dichtheit und Druck prüfen.",
                "type": "inspection_action",
                "expected_value": "Keine Leckage, Systemdruck im Normalbereich",
                "tools_required": ["Taschenlampe", "Manometer"],
                "estimated_time_min": 15,
                "responsible_role": "gunner",
                "maintenance_level": "L2",
                "component_id": "turmdrehkranz",
                "tasks": [],
                "common_defects": [
                    {
                        "description": "Hydraulikleckage am Richtantrieb",
                        "priority": "high",
                        "indicators": ["Hydrauliköl am Turmboden", "Richtgeschwindigkeit reduziert"],
                        "action": "Leitungen und Verschraubungen prüfen, Schlauch tauschen",
                    },
                ],
            },
        ],
    },
    {
        "id": "D",
        "name": "Elektrik und Elektronik",
        "checkpoints": [
            {
                "number": 10,
                "name": "Batteriespannung messen",
                "description": "Ruhespannung der Bordbatterien mit dem Multimeter messen.",
                "type": "measurement",
                "expected_value": {"description": "24 bis 28 V", "unit": "V", "min": 24, "max": 28},
                "tools_required": ["Multimeter"],
                "estimated_time_min": 10,
                "responsible_role": "commander",
                "maintenance_level": "L1",
                "component_id": None,
                "tasks": [],
                "common_defects": [
                    {
                        "description": "Batteriespannung reduziert",
                        "priority": "medium",
                        "indicators": ["Spannung unter 24 V", "Anlasser dreht langsam"],
                        "action": "Batterien laden, Kontakte reinigen, Kapazitätstest durchführen",
                    },
                ],
            },
        ],
    },
]


# =============================================================================
# Component Records
# =============================================================================

COMPONENTS: List[ComponentRecord] = [
    ComponentRecord(
        id="mtu_mb873",
        name="MTU MB 873 Ka-501 V12-Dieselmotor",
        category="powertrain",
        specs={
            "type": "V12-Viertakt-Dieselmotor mit Abgasturboaufladung",
            "model": "MB 873 Ka-501",
            "power_hp": 1500,
            "power_kw": 1100,
            "displacement_l": 47.6,
            "cylinders": 12,
            "cooling": "Flüssigkeitskühlung",
            "max_rpm": 2600,
            "idle_rpm": 750,
            "oil_capacity_l": 85,
        },
        maintenance_schedule=(
            MaintenanceTask("Motorölstand prüfen", "täglich", "L1"),
            MaintenanceTask("Motoröl wechseln", "250 Betriebsstunden", "L2"),
            MaintenanceTask("Ölfilter austauschen", "500 Betriebsstunden", "L2"),
            MaintenanceTask("Ventilspiel einstellen", "1000 Betriebsstunden", "L3"),
        ),
        monitoring_points=(
            MonitoringPoint("Öldruck", "bar", 4.0, 6.5, critical_min=2.5),
            MonitoringPoint("Kühlmitteltemperatur", "°C", 80, 95, critical_max=105),
            MonitoringPoint("Motordrehzahl", "U/min", 750, 2600, critical_max=2700),
            MonitoringPoint("Abgastemperatur", "°C", 300, 650, critical_max=750),
        ),
        common_failures=(
            ComponentFailure(
                id="overheating",
                name="Überhitzung",
                symptoms=(
                    "Motor überhitzt",
                    "Kühlmitteltemperatur steigt über 105 °C",
                    "Öldruck schwankt bei hoher Temperatur",
                    "Leistungsverlust unter Last",
                ),
                cause="Kühlmittelverlust, stark verschmutzte Kühler oder defekter Lüfterantrieb",
                mtbf_hours=1800,
            ),
            ComponentFailure(
                id="oil_pressure_loss",
                name="Öldruckabfall",
                symptoms=(
                    "Öldruckwarnung leuchtet",
                    "Öldruck unter 2,5 bar im Leerlauf",
                    "Metallische Laufgeräusche",
                ),
                cause="Verschlissene Ölpumpe, verstopfter Ölfilter oder Lagerschaden",
                mtbf_hours=2500,
            ),
            ComponentFailure(
                id="turbocharger_damage",
                name="Turboladerschaden",
                symptoms=(
                    "Schwarzer Rauch aus dem Auspuff",
                    "Pfeifendes Geräusch beim Beschleunigen",
                    "Leistungsverlust",
                ),
                cause="Lagerverschleiß durch Ölmangel oder Fremdkörper im Verdichter",
                mtbf_hours=3000,
            ),
            ComponentFailure(
                id="injection_fault",
                name="Einspritzstörung",
                symptoms=(
                    "Motor startet schwer",
                    "Unrunder Leerlauf",
                    "Erhöhter Kraftstoffverbrauch",
                ),
                cause="Verschlissene Einspritzdüsen oder verstellter Förderbeginn",
                mtbf_hours=2200,
            ),
        ),
        notes="Kraftstoffverbrauch und Öldruck sind die wichtigsten Frühindikatoren für Motorschäden.",
    ),
    ComponentRecord(
        id="renk_hswl354",
        name="RENK HSWL 354 Lenk-Schaltgetriebe",
        category="powertrain",
        specs={
            "type": "Hydrodynamisch-mechanisches Lenk-Schaltgetriebe",
            "model": "HSWL 354",
            "gears_forward": 4,
            "gears_reverse": 2,
            "oil_capacity_l": 95,
            "weight_kg": 2300,
        },
        maintenance_schedule=(
            MaintenanceTask("Getriebeölstand prüfen", "wöchentlich", "L1"),
            MaintenanceTask("Getriebeöl prüfen", "250 Betriebsstunden", "L2"),
            MaintenanceTask("Getriebeöl und Filter wechseln", "1000 Betriebsstunden", "L3"),
        ),
        monitoring_points=(
            MonitoringPoint("Getriebeöltemperatur", "°C", 60, 110, critical_max=130),
            MonitoringPoint("Schaltdruck", "bar", 12, 16, critical_min=9),
        ),
        common_failures=(
            ComponentFailure(
                id="oil_leak",
                name="Getriebeölleckage",
                symptoms=(
                    "Ölflecken unter dem Fahrzeug",
                    "Getriebeöltemperatur erhöht",
                    "Schaltvorgänge verzögert",
                ),
                cause="Undichte Wellendichtringe oder beschädigte Dichtungen",
                mtbf_hours=2000,
            ),
            ComponentFailure(
                id="clutch_wear",
                name="Kupplungsverschleiß",
                symptoms=(
                    "Gänge rutschen durch",
                    "Verzögerte Kraftübertragung",
                    "Ungewöhnliche Geräusche beim Schalten",
                ),
                cause="Verschlissene Kupplungslamellen",
                mtbf_hours=4000,
            ),
            ComponentFailure(
                id="steering_fault",
                name="Lenkhydraulik-Störung",
                symptoms=(
                    "Lenkung reagiert verzögert",
                    "Hydraulikdruck schwankt",
                    "Fahrzeug zieht einseitig",
                ),
                cause="Luft im Lenkkreislauf oder verschlissene Lenkpumpe",
                mtbf_hours=3500,
            ),
        ),
    ),
    ComponentRecord(
        id="turmdrehkranz",
        name="Turmdrehkranz mit Richtantrieb",
        category="turret",
        specs={
            "type": "Kugeldrehverbindung mit elektrohydraulischem Richtantrieb",
            "rotation_speed": "360° in 9 Sekunden",
            "traverse_range": "360°",
            "elevation_range": "-9° bis +20°",
        },
        maintenance_schedule=(
            MaintenanceTask("Turmdrehkranz schmieren (12 Punkte)", "wöchentlich", "L1"),
            MaintenanceTask("Turmhydraulik Druck prüfen", "500 Betriebsstunden", "L2"),
            MaintenanceTask("Lagerspiel messen", "1000 Betriebsstunden", "L3"),
        ),
        monitoring_points=(
            MonitoringPoint("Hydraulikdruck Richtantrieb", "bar", 140, 160, critical_min=120),
        ),
        common_failures=(
            ComponentFailure(
                id="bearing_wear",
                name="Lagerverschleiß",
                symptoms=(
                    "Turm dreht ruckartig",
                    "Knackgeräusche beim Schwenken",
                    "Erhöhtes Lagerspiel",
                ),
                cause="Unzureichende Schmierung oder eingedrungener Schmutz",
                mtbf_hours=5000,
            ),
            ComponentFailure(
                id="hydraulic_leak",
                name="Hydraulikleckage Richtantrieb",
                symptoms=(
                    "Hydrauliköl am Turmboden",
                    "Richtgeschwindigkeit reduziert",
                ),
                cause="Poröse Hydraulikschläuche oder lose Verschraubungen",
                mtbf_hours=2500,
            ),
            ComponentFailure(
                id="blockage",
                name="Blockade",
                symptoms=(
                    "Turm lässt sich nicht drehen",
                    "Fremdkörper im Drehkranz",
                ),
                cause="Fremdkörper oder Lagerschaden",
                mtbf_hours=8000,
            ),
        ),
    ),
]

COMPONENTS_BY_ID: Dict[str, ComponentRecord] = {c.id: c for c in COMPONENTS}


# =============================================================================
# Maintenance Intervals (NATO AJP-4 / MTU concept)
# =============================================================================

MAINTENANCE_INTERVALS: List[dict] = [
    {
        "id": "L1-DAILY",
        "level": "L1",
        "name": "Tägliche Wartung (vor/nach Betrieb)",
        "executor": "crew",
        "trigger": {"type": "event", "value": "before_after_operation"},
        "duration": "30 Minuten",
        "tasks": [
            "Motorölstand prüfen",
            "Kühlmittelstand prüfen",
            "Kraftstoffstand prüfen",
            "Ketten auf Spannung und Beschädigungen prüfen",
            "Laufrollen Sichtprüfung",
            "Beleuchtung funktionsfähig",
            "Feuerlöschanlage Druck prüfen",
            "Batteriezustand prüfen",
            "Funktionstests durchführen",
        ],
        "sections": ["A", "B", "F"],
        "notes": "Vor jeder Ausfahrt und nach Rückkehr durchzuführen. Basis für Einsatzbereitschaft.",
    },
    {
        "id": "L1-WEEKLY",
        "level": "L1",
        "name": "Wöchentliche Wartung",
        "executor": "crew",
        "trigger": {"type": "calendar", "value": 7, "unit": "days"},
        "duration": "60 Minuten",
        "tasks": [
            "Alle Prüfpunkte der täglichen Wartung",
            "Luftfilter Vorabscheider leeren",
            "Kraftstofffilter Wasserabscheider prüfen",
            "Getriebeölstand prüfen",
            "Turmdrehkranz schmieren (12 Punkte)",
            "Waffenreinigung",
            "Munitionslagerung kontrollieren",
            "Elektronik Selbsttests",
            "NBC-Schutzanlage testen",
            "Erste-Hilfe-Material prüfen",
        ],
        "sections": ["A", "B", "C", "D", "E", "F"],
        "notes": "Erweiterte Prüfung aller Systeme. Besatzung arbeitet als Team.",
    },
    {
        "id": "L2-250H",
        "level": "L2",
        "name": "250-Stunden Wartung (Ölwechsel)",
        "executor": "unit_technician",
        "trigger": {"type": "operating_hours", "value": 250},
        "duration": "4 Stunden",
        "tasks": [
            "Motoröl wechseln (85 Liter)",
            "Kraftstofffilter Inspektion",
            "Luftfilter reinigen",
            "Keilriemen Spannung prüfen und nachstellen",
            "Kühlmittelsystem Druck prüfen",
            "Getriebeöl prüfen",
            "Hydraulikflüssigkeit nachfüllen bei Bedarf",
            "Alle Schmierstellen abschmieren",
            "Bremssystem prüfen",
            "Funktionstest aller Systeme",
        ],
        "sections": ["A", "B"],
        "notes": "MTU-Wartungskonzept Level 1. Entspricht NATO AJP-4 Level 2 (Intermediate).",
    },
    {
        "id": "L2-500H",
        "level": "L2",
        "name": "500-Stunden Wartung (Filter)",
        "executor": "unit_technician",
        "trigger": {"type": "operating_hours", "value": 500},
        "duration": "8 Stunden",
        "tasks": [
            "Alle Aufgaben der 250h-Wartung",
            "Kraftstofffilter austauschen",
            "Ölfilter austauschen",
            "Zentrifugalfilter reinigen",
            "Kurbelgehäuseentlüftung prüfen",
            "Getriebeöl prüfen (bei Bedarf wechseln)",
            "Turbolader inspizieren",
            "Abgasanlage auf Dichtheit prüfen",
            "Kettenbolzen Verschleiß messen",
            "Laufrollen Lager prüfen",
            "Stoßdämpfer detailliert prüfen",
            "Turmhydraulik Druck prüfen",
            "Feuerleitanlage kalibrieren",
        ],
        "sections": ["A", "B", "C"],
        "notes": "MTU-Wartungskonzept Level 2. Umfangreiche Filterarbeiten und Inspektionen.",
    },
    {
        "id": "L3-1000H",
        "level": "L3",
        "name": "1000-Stunden Wartung (Ventile)",
        "executor": "mobile_repair_team",
        "trigger": {"type": "operating_hours", "value": 1000},
        "duration": "2 Tage",
        "tasks": [
            "Alle Aufgaben der 500h-Wartung",
            "Ventilspiel einstellen",
            "Einspritzpumpe Zeitpunkt prüfen",
            "Regler einstellen",
            "Kompressionstest alle Zylinder",
            "Turbolader Lagerspiel messen",
            "Kühlsystem Drucktest",
            "Getriebeöl wechseln (95 Liter)",
            "Getriebefilter austauschen",
            "Magnetstopfen prüfen",
            "Kette Verschleißmessung (bei >5% Längung: austauschen)",
            "Laufrollen detaillierte Inspektion",
            "Antriebsräder Zahnkranz messen",
            "Turmdrehkranz Lagerspiel messen",
            "Waffenstabilisierung kalibrieren",
            "Laserentfernungsmesser kalibrieren",
        ],
        "sections": ["A", "B", "C"],
        "notes": (
            "MTU-Wartungskonzept Level 3. Entspricht NATO AJP-4 Level 3 (Field Depot). "
            "Benötigt Spezialwerkzeug."
        ),
    },
    {
        "id": "L4-6000H",
        "level": "L4",
        "name": "6000-Stunden Wartung (Hauptüberholung)",
        "executor": "depot_manufacturer",
        "trigger": {"type": "operating_hours", "value": 6000},
        "duration": "4 Wochen",
        "tasks": [
            "Komplette Motordemontage",
            "Zylinderkopf überholen",
            "Kolben und Ringe ersetzen",
            "Haupt- und Pleuellager ersetzen",
            "Einspritzdüsen überholen",
            "Turbolader komplett überholen",
            "Brennraum inspizieren",
            "Nockenwelle inspizieren",
            "Getriebe komplett zerlegen",
            "Kupplungspakete ersetzen",
            "Getriebe Zahnräder inspizieren",
            "Lagerung messen und bei Bedarf ersetzen",
            "Komplette Kette ersetzen",
            "Laufrollen ersetzen",
            "Antriebsräder bei Bedarf ersetzen",
            "Turmdrehkranz komplett überholen",
            "Hauptwaffe zur Herstellerwartung",
            "Feuerleitanlage Komplett-Check",
            "Alle Hydrauliksysteme revidieren",
            "Komplette Fahrzeug-Diagnostik",
        ],
        "sections": ["A", "B", "C", "D", "E", "F"],
        "notes": (
            "MTU-Wartungskonzept Level 4. Entspricht NATO AJP-4 Level 4 (Base Depot). "
            "Nur Hersteller oder autorisierte Depots."
        ),
    },
    {
        "id": "L1-PRE-DEPLOYMENT",
        "level": "L1",
        "name": "Einsatzvorbereitung",
        "executor": "crew",
        "trigger": {"type": "event", "value": "before_deployment"},
        "duration": "2 Stunden",
        "tasks": [
            "Komplette L1-Wöchentliche Wartung",
            "Zusätzliche Munition laden und sichern",
            "Ersatzteile-Set komplettieren",
            "Verbandskasten erneuern",
            "Wassertanks auffüllen",
            "Notrationen verladen",
            "Abschleppseile prüfen",
            "Kommunikationssysteme testen",
            "Verschlüsselungsgeräte laden",
            "GPS kalibrieren",
            "Kampfführungssystem aktualisieren",
            "NBC-Schutzmasken für alle Besatzungsmitglieder",
            "Feuerlöschanlage Volltest",
            "Alle Sicherheitssysteme testen",
        ],
        "sections": ["A", "B", "C", "D", "E", "F"],
        "notes": "Vor jedem Einsatz durchzuführen. Vollständige Einsatzbereitschaft herstellen.",
    },
    {
        "id": "L1-POST-DEPLOYMENT",
        "level": "L1",
        "name": "Einsatznachbereitung",
        "executor": "crew",
        "trigger": {"type": "event", "value": "after_deployment"},
        "duration": "3 Stunden",
        "tasks": [
            "Fahrzeug außen reinigen",
            "Kampfraum reinigen",
            "Waffen reinigen und konservieren",
            "Munition sichern und zählen",
            "Hülsen entsorgen",
            "Alle Systeme auf Beschädigungen prüfen",
            "Kettenverschleiß messen",
            "Motorölstand prüfen und nachfüllen",
            "Kraftstoff auffüllen",
            "Alle Flüssigkeiten prüfen",
            "Schäden dokumentieren",
            "Mängelliste erstellen",
            "Ersatzteile-Verbrauch melden",
            "Betriebsstunden dokumentieren",
        ],
        "sections": ["A", "B", "C", "D", "E", "F"],
        "notes": "Nach jedem Einsatz. Fahrzeug wieder in Bereitschaft versetzen und Schäden erfassen.",
    },
    {
        "id": "L2-ANNUAL",
        "level": "L2",
        "name": "Jährliche Inspektion",
        "executor": "unit_technician",
        "trigger": {"type": "calendar", "value": 365, "unit": "days"},
        "duration": "1 Tag",
        "tasks": [
            "Komplette Fahrzeugdokumentation prüfen",
            "Alle TÜV-relevanten Prüfungen",
            "Feuerlöschanlage TÜV",
            "Druckbehälter prüfen",
            "Feuerlöscher erneuern",
            "Batterie Zustand testen (Kapazitätstest)",
            "Alle Dichtungen alterungsbedingt prüfen",
            "Gummiteile auf Risse prüfen",
            "Korrosionsschutz erneuern",
            "Lackschäden ausbessern",
            "Alle Schmierintervalle nachholen",
            "Betriebsstundenzähler kalibrieren",
        ],
        "sections": ["A", "B", "C", "D", "E", "F"],
        "notes": "Unabhängig von Betriebsstunden. Zeitabhängige Wartung und gesetzliche Prüfungen.",
    },
]
