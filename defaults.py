SETTINGS_ID = "settings"

SALARY_CATEGORIES = frozenset({"Salary", "Stipendio"})

DEFAULT_SUBCATEGORY = "Other"

DEFAULT_CATEGORIES: dict[str, dict[str, list[str]]] = {
    "en": {
        "Salary": ["Fixed", "Bonus", "Other"],
        "Home": ["Rent", "Mortgage", "Utilities", "Maintenance", "Furniture", "Other"],
        "Groceries": ["Supermarket", "Fruits/Vegetables", "Meat/Fish", "Other"],
        "Transportation": [
            "Fuel",
            "Public transit",
            "Car maintenance",
            "Insurance",
            "Parking",
            "Other",
        ],
        "Health": ["Doctor", "Pharmacy", "Gym", "Other"],
        "Entertainment": [
            "Restaurants",
            "Cinema/Theater",
            "Travel",
            "Hobbies",
            "Other",
        ],
        "Clothing": ["Clothes", "Shoes", "Accessories", "Other"],
        "Technology": ["Electronics", "Software", "Phone", "Other"],
        "Education": ["Courses", "Books", "Other"],
        "Gifts": ["Family", "Friends", "Other"],
        "Taxes": ["Income tax", "Property tax", "Car tax", "Other"],
        "Investments": ["Stocks", "Funds", "Crypto", "Other"],
        "Other": ["Miscellaneous", "Unexpected"],
    },
    "it": {
        "Stipendio": ["Fisso", "Bonus", "Altro"],
        "Casa": ["Affitto", "Mutuo", "Utenze", "Manutenzione", "Arredamento", "Altro"],
        "Spesa": ["Supermercato", "Frutta/Verdura", "Carne/Pesce", "Altro"],
        "Trasporti": [
            "Carburante",
            "Mezzi pubblici",
            "Manutenzione auto",
            "Assicurazione",
            "Parcheggio",
            "Altro",
        ],
        "Salute": ["Medico", "Farmacia", "Palestra", "Altro"],
        "Svago": ["Ristoranti", "Cinema/Teatro", "Viaggi", "Hobby", "Altro"],
        "Abbigliamento": ["Vestiti", "Scarpe", "Accessori", "Altro"],
        "Tecnologia": ["Elettronica", "Software", "Telefonia", "Altro"],
        "Istruzione": ["Corsi", "Libri", "Altro"],
        "Regali": ["Famiglia", "Amici", "Altro"],
        "Tasse": ["IRPEF", "IMU", "Bollo auto", "Altro"],
        "Investimenti": ["Azioni", "Fondi", "Crypto", "Altro"],
        "Altro": ["Varie", "Imprevisti"],
    },
}

DEFAULT_TAGS: dict[str, list[str]] = {
    "en": ["Urgent", "Recurring", "Optional", "Deductible"],
    "it": ["Urgente", "Ricorrente", "Opzionale", "Deducibile"],
}

CATEGORY_COLORS: dict[str, str] = {
    "Stipendio": "#10B981",
    "Salary": "#10B981",
    "Casa": "#F59E0B",
    "Home": "#F59E0B",
    "Spesa": "#EF4444",
    "Groceries": "#EF4444",
    "Trasporti": "#3B82F6",
    "Transportation": "#3B82F6",
    "Salute": "#EC4899",
    "Health": "#EC4899",
    "Svago": "#8B5CF6",
    "Entertainment": "#8B5CF6",
    "Abbigliamento": "#F97316",
    "Clothing": "#F97316",
    "Tecnologia": "#06B6D4",
    "Technology": "#06B6D4",
    "Istruzione": "#84CC16",
    "Education": "#84CC16",
    "Regali": "#D946EF",
    "Gifts": "#D946EF",
    "Tasse": "#64748B",
    "Taxes": "#64748B",
    "Investimenti": "#14B8A6",
    "Investments": "#14B8A6",
    "Altro": "#9CA3AF",
    "Other": "#9CA3AF",
}

DEFAULT_CATEGORY_COLOR = "#6B7280"

DEFAULT_USER_SETTINGS: dict[str, object] = {
    "locale": "en",
    "currency": "EUR",
    "savings_goal": 20,
}

DEFAULT_GLOBAL_FILTER: dict[str, object] = {
    "enabled": False,
    "start_date": None,
    "end_date": None,
}
