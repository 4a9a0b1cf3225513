"""
Bundled Tier-1 seed list: known Venezuelan officials and state entities
designated by OFAC.

Used when the SDN files are not available (offline setup, tests).
Source: https://ofac.treasury.gov/sanctions-programs-and-country-information/venezuela-related-sanctions
"""

KNOWN_VENEZUELAN_OFFICIALS = [
    {
        "externalId": "ofac-maduro-001",
        "fullName": "Nicolás Maduro Moros",
        "entityType": "PERSON",
        "sanctionsPrograms": ["VENEZUELA", "NARCOTICS"],
        "aliases": ["Nicolas Maduro", "Maduro Moros", "Nicolas Ernesto Maduro Moros"],
        "nationality": "VE",
        "dateOfBirth": "1962-11-23",
        "notes": "President of Venezuela. Sanctioned July 31, 2017 for undermining democracy. "
                 "Narco-terrorism charges March 2020.",
    },
    {
        "externalId": "ofac-cabello-001",
        "fullName": "Diosdado Cabello Rondón",
        "entityType": "PERSON",
        "sanctionsPrograms": ["VENEZUELA", "NARCOTICS"],
        "aliases": ["Diosdado Cabello", "Cabello Rondon"],
        "nationality": "VE",
        "dateOfBirth": "1963-04-15",
        "notes": "President of National Assembly. Sanctioned May 18, 2018 for corruption "
                 "and human rights violations.",
    },
    {
        "externalId": "ofac-rodriguez-delcy-001",
        "fullName": "Delcy Eloína Rodríguez Gómez",
        "entityType": "PERSON",
        "sanctionsPrograms": ["VENEZUELA"],
        "aliases": ["Delcy Rodriguez", "Delcy Eloina Rodriguez Gomez"],
        "nationality": "VE",
        "dateOfBirth": "1969-05-18",
        "notes": "Executive Vice President. Sanctioned September 25, 2018 for corruption.",
    },
    {
        "externalId": "ofac-rodriguez-jorge-001",
        "fullName": "Jorge Jesús Rodríguez Gómez",
        "entityType": "PERSON",
        "sanctionsPrograms": ["VENEZUELA"],
        "aliases": ["Jorge Rodriguez", "Jorge Jesus Rodriguez Gomez"],
        "nationality": "VE",
        "dateOfBirth": "1965-06-19",
        "notes": "President of National Assembly. Sanctioned September 25, 2018 for "
                 "undermining democracy.",
    },
    {
        "externalId": "ofac-aissami-001",
        "fullName": "Tareck Zaidan El Aissami Maddah",
        "entityType": "PERSON",
        "sanctionsPrograms": ["VENEZUELA", "NARCOTICS"],
        "aliases": ["Tareck El Aissami", "El Aissami"],
        "nationality": "VE",
        "dateOfBirth": "1974-11-12",
        "notes": "Minister of Petroleum. Sanctioned February 13, 2017 for narcotics trafficking.",
    },
    {
        "externalId": "ofac-padrino-001",
        "fullName": "Vladimir Padrino López",
        "entityType": "PERSON",
        "sanctionsPrograms": ["VENEZUELA"],
        "aliases": ["Vladimir Padrino", "Padrino Lopez"],
        "nationality": "VE",
        "dateOfBirth": "1963-09-26",
        "notes": "Minister of Defense. Sanctioned June 19, 2019 for undermining democracy "
                 "and human rights abuses.",
    },
    {
        "externalId": "ofac-reverol-001",
        "fullName": "Néstor Luis Reverol Torres",
        "entityType": "PERSON",
        "sanctionsPrograms": ["VENEZUELA", "NARCOTICS"],
        "aliases": ["Nestor Reverol", "Reverol Torres"],
        "nationality": "VE",
        "dateOfBirth": "1965-08-06",
        "notes": "Minister of Interior. Sanctioned November 18, 2016 for narcotics trafficking.",
    },
    {
        "externalId": "ofac-saab-001",
        "fullName": "Alex Nain Saab Morán",
        "entityType": "PERSON",
        "sanctionsPrograms": ["VENEZUELA", "CORRUPTION"],
        "aliases": ["Alex Saab", "Saab Moran"],
        # Colombian national, regime associate
        "nationality": "CO",
        "dateOfBirth": "1971-11-21",
        "notes": "Financier and front man for Maduro. Sanctioned July 25, 2019 for money "
                 "laundering. Extradited 2021.",
    },
    {
        "externalId": "ofac-pdvsa-001",
        "fullName": "Petróleos de Venezuela, S.A.",
        "entityType": "ORGANIZATION",
        "sanctionsPrograms": ["VENEZUELA"],
        "aliases": ["PDVSA", "Petroleos de Venezuela"],
        "nationality": "VE",
        "notes": "State-owned oil company. Sanctioned January 28, 2019 to pressure Maduro regime.",
    },
    {
        "externalId": "ofac-conviasa-001",
        "fullName": "Consorcio Venezolano de Industrias Aeronáuticas y Servicios Aéreos, S.A.",
        "entityType": "ORGANIZATION",
        "sanctionsPrograms": ["VENEZUELA"],
        "aliases": ["CONVIASA", "Conviasa Airlines"],
        "nationality": "VE",
        "notes": "State-owned airline. Sanctioned February 7, 2020 for facilitating regime operations.",
    },
]


def seed_records(source: str = "OFAC") -> list[dict]:
    """Seed list as import records for the given source."""
    return [{**record, "source": source, "tier": 1, "confidenceLevel": 5}
            for record in KNOWN_VENEZUELAN_OFFICIALS]
