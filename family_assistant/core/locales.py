"""
Family Assistant — Locale templates.

Every user-visible string and every piece of prompt prose lives here, keyed
by language code. The action protocol itself (marker syntax, action names,
field names) is language-agnostic and lives in core.actions / core.parser;
only the marker keyword and the surrounding prose vary per locale.

Supported: "it" (default) and "en".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Locale:
    code: str
    marker_keyword: str
    weekdays: tuple[str, ...]
    months: tuple[str, ...]
    default_user_name: str
    intro: str
    context_header: str
    sections: dict[str, str]
    assigned_to: str
    budget_line: str
    rules: str
    actions_header: str
    examples_header: str
    child_clause: str
    messages: dict[str, str] = field(default_factory=dict)
    # (lead-in, action type, payload, follow-up) rendered as prompt examples
    examples: tuple[tuple[str, str, dict, str], ...] = ()

    def format_date(self, when: datetime) -> str:
        weekday = self.weekdays[when.weekday()]
        month = self.months[when.month - 1]
        if self.code == "en":
            return f"{weekday}, {month} {when.day}, {when.year}"
        return f"{weekday} {when.day} {month} {when.year}"

    def format_short_date(self, when: datetime) -> str:
        if self.code == "en":
            return f"{when.month}/{when.day}/{when.year}"
        return f"{when.day:02d}/{when.month:02d}/{when.year}"

    def message(self, key: str, **kwargs: object) -> str:
        return self.messages[key].format(**kwargs)


_IT = Locale(
    code="it",
    marker_keyword="AZIONE_PROPOSTA",
    weekdays=("lunedì", "martedì", "mercoledì", "giovedì", "venerdì", "sabato", "domenica"),
    months=(
        "gennaio", "febbraio", "marzo", "aprile", "maggio", "giugno",
        "luglio", "agosto", "settembre", "ottobre", "novembre", "dicembre",
    ),
    default_user_name="Utente",
    intro=(
        "Sei l'assistente AI di una app per la gestione della famiglia. Oggi è {date}.\n"
        "L'utente si chiama {user_name} e ha il ruolo di {role}."
    ),
    context_header="CONTESTO FAMIGLIA ATTUALE:",
    sections={
        "today_events": "📅 Eventi di oggi:",
        "upcoming_events": "📆 Prossimi eventi:",
        "pending_tasks": "✅ Attività da fare:",
        "overdue_tasks": "⚠️ Attività scadute:",
        "shopping_list": "🛒 Lista spesa:",
        "monthly_budget": "💰 Spese del mese:",
        "family_members": "👨‍👩‍👧‍👦 Membri famiglia:",
    },
    assigned_to="assegnata a {name}",
    budget_line="Totale: €{total}",
    rules=(
        "REGOLE IMPORTANTI:\n"
        "1. Rispondi SEMPRE in italiano\n"
        "2. Usa un tono amichevole e familiare\n"
        "3. Mantieni il CONTESTO della conversazione\n"
        "4. Se l'utente chiede di MODIFICARE dati (eventi, attività, spese, lista della spesa), "
        "NON eseguire mai l'azione direttamente\n"
        "5. Proponi l'azione con il formato specifico e chiedi conferma\n"
        "6. DEVI SEMPRE usare questo formato ESATTO, su una sola riga, per proporre azioni:\n"
        "   {marker}\n"
        "7. Proponi UNA sola azione per risposta\n"
        "8. Quando l'utente chiede di aggiungere PIÙ prodotti, usa SEMPRE add_shopping_items con un array di items\n"
        "9. Mai dire \"Ho fatto\" o \"Ho aggiunto\" senza che l'utente abbia confermato prima!"
    ),
    actions_header="Tipi di azione disponibili (usa esattamente questi nomi di campo):",
    examples_header="ESEMPI CORRETTI:",
    child_clause=(
        "⚠️ L'utente è un bambino. Usa un linguaggio semplice e NON proporre azioni "
        "che modificano o eliminano dati."
    ),
    messages={
        "event_created": "Evento creato",
        "event_updated": "Evento aggiornato",
        "event_deleted": "Evento eliminato",
        "task_created": "Attività creata",
        "task_updated": "Attività aggiornata",
        "task_completed": "Attività completata",
        "task_deleted": "Attività eliminata",
        "expense_added": "Spesa aggiunta",
        "expense_updated": "Spesa aggiornata",
        "expense_deleted": "Spesa eliminata",
        "item_added": "Prodotto aggiunto alla lista",
        "items_added": "{count} prodotti aggiunti alla lista",
        "item_updated": "Prodotto aggiornato",
        "item_removed": "Prodotto rimosso dalla lista",
        "no_items": "Nessun prodotto specificato",
        "purchase_completed": "Acquisto registrato: {count} prodotti, €{amount}",
        "purchase_nothing": "Questi prodotti risultano già acquistati o non esistono",
        "not_found": "Elemento non trovato",
        "not_supported": "Azione non supportata",
        "permission_denied": "Non hai i permessi per eseguire questa azione. Chiedi a un genitore!",
        "invalid_data": "Dati dell'azione non validi",
        "execution_failed": "Impossibile eseguire l'azione. Riprova più tardi.",
        "chat_failed": "Impossibile elaborare il messaggio. Riprova.",
        "stream_failed": "Errore durante la risposta",
        "conversation_not_found": "Conversazione non trovata",
        "empty_message": "Il messaggio è vuoto",
        "rate_limited": "Troppi messaggi, aspetta un momento e riprova.",
        "thinking": "💭 …",
        "confirm": "✅ Conferma",
        "cancel": "❌ Annulla",
        "cancelled": "Azione annullata.",
        "no_pending": "Nessuna azione in attesa di conferma.",
        "welcome": (
            "Ciao {name}! Sono l'assistente della famiglia.\n\n"
            "Scrivimi o mandami un vocale: posso rispondere su eventi, attività, spesa e budget, "
            "e proporti modifiche che eseguo solo dopo la tua conferma.\n\n"
            "Scrivi /help per l'elenco dei comandi."
        ),
        "help": (
            "*Comandi disponibili:*\n"
            "/new — Inizia una nuova conversazione\n"
            "/history — Riprendi una conversazione recente\n"
            "/delete — Elimina la conversazione attuale\n"
            "/lang it|en — Cambia lingua\n"
            "/help — Mostra questo messaggio"
        ),
        "new_conversation": "Nuova conversazione iniziata.",
        "language_set": "Lingua impostata: italiano.",
        "language_usage": "Uso: /lang it oppure /lang en",
        "voice_heard": "🎤 Ho sentito: {text}",
        "voice_failed": "Non sono riuscito a elaborare il messaggio vocale. Riprova.",
        "history_empty": "Non hai ancora conversazioni.",
        "history_header": "Le tue conversazioni recenti:",
        "untitled": "Senza titolo",
        "conversation_opened": "Conversazione ripresa: {title}",
        "conversation_deleted": "Conversazione eliminata.",
        "no_conversation": "Nessuna conversazione attiva.",
    },
    examples=(
        (
            "Vuoi che aggiunga 'latte' alla lista della spesa?",
            "add_shopping_item", {"name": "latte", "quantity": 1}, "Confermi?",
        ),
        (
            "Ecco gli ingredienti da aggiungere:",
            "add_shopping_items",
            {"items": [{"name": "cipolla", "quantity": 1}, {"name": "carote", "quantity": 2}]},
            "Confermi?",
        ),
    ),
)


_EN = Locale(
    code="en",
    marker_keyword="ACTION_PROPOSED",
    weekdays=("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"),
    months=(
        "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ),
    default_user_name="User",
    intro=(
        "You are the AI assistant of a family management app. Today is {date}.\n"
        "The user's name is {user_name} with role {role}."
    ),
    context_header="CURRENT FAMILY CONTEXT:",
    sections={
        "today_events": "📅 Today's events:",
        "upcoming_events": "📆 Upcoming events:",
        "pending_tasks": "✅ Pending tasks:",
        "overdue_tasks": "⚠️ Overdue tasks:",
        "shopping_list": "🛒 Shopping list:",
        "monthly_budget": "💰 This month's spending:",
        "family_members": "👨‍👩‍👧‍👦 Family members:",
    },
    assigned_to="assigned to {name}",
    budget_line="Total: €{total}",
    rules=(
        "IMPORTANT RULES:\n"
        "1. ALWAYS respond in English\n"
        "2. Use a friendly, familiar tone\n"
        "3. Maintain conversation CONTEXT\n"
        "4. If the user asks to MODIFY data (events, tasks, expenses, shopping list), "
        "NEVER execute the action directly\n"
        "5. Propose the action with the specific format and ask for confirmation\n"
        "6. You MUST ALWAYS use this EXACT format, on a single line, to propose actions:\n"
        "   {marker}\n"
        "7. Propose ONE action per reply\n"
        "8. When the user asks to add MULTIPLE products, ALWAYS use add_shopping_items with an items array\n"
        "9. Never say \"Done\" or \"I've added\" without the user confirming first!"
    ),
    actions_header="Available action types (use exactly these field names):",
    examples_header="CORRECT EXAMPLES:",
    child_clause=(
        "⚠️ The user is a child. Use simple language and DO NOT propose actions "
        "that modify or delete data."
    ),
    messages={
        "event_created": "Event created",
        "event_updated": "Event updated",
        "event_deleted": "Event deleted",
        "task_created": "Task created",
        "task_updated": "Task updated",
        "task_completed": "Task completed",
        "task_deleted": "Task deleted",
        "expense_added": "Expense added",
        "expense_updated": "Expense updated",
        "expense_deleted": "Expense deleted",
        "item_added": "Item added to list",
        "items_added": "{count} items added to list",
        "item_updated": "Item updated",
        "item_removed": "Item removed from list",
        "no_items": "No items specified",
        "purchase_completed": "Purchase recorded: {count} items, €{amount}",
        "purchase_nothing": "These items are already purchased or do not exist",
        "not_found": "Item not found",
        "not_supported": "Action not supported",
        "permission_denied": "You don't have permission to perform this action. Ask a parent!",
        "invalid_data": "Invalid action data",
        "execution_failed": "Failed to execute action. Please try again later.",
        "chat_failed": "Failed to process message. Please try again.",
        "stream_failed": "Error while responding",
        "conversation_not_found": "Conversation not found",
        "empty_message": "The message is empty",
        "rate_limited": "Too many messages, please wait a moment and try again.",
        "thinking": "💭 …",
        "confirm": "✅ Confirm",
        "cancel": "❌ Cancel",
        "cancelled": "Action cancelled.",
        "no_pending": "No action is waiting for confirmation.",
        "welcome": (
            "Hi {name}! I'm your family assistant.\n\n"
            "Write to me or send a voice note: I can answer about events, tasks, shopping "
            "and budget, and propose changes that I only carry out after you confirm.\n\n"
            "Type /help for the command list."
        ),
        "help": (
            "*Available commands:*\n"
            "/new — Start a new conversation\n"
            "/history — Resume a recent conversation\n"
            "/delete — Delete the current conversation\n"
            "/lang it|en — Change language\n"
            "/help — Show this message"
        ),
        "new_conversation": "New conversation started.",
        "language_set": "Language set: English.",
        "language_usage": "Usage: /lang it or /lang en",
        "voice_heard": "🎤 I heard: {text}",
        "voice_failed": "Sorry, I couldn't process your voice message. Please try again.",
        "history_empty": "You have no conversations yet.",
        "history_header": "Your recent conversations:",
        "untitled": "Untitled",
        "conversation_opened": "Conversation resumed: {title}",
        "conversation_deleted": "Conversation deleted.",
        "no_conversation": "No active conversation.",
    },
    examples=(
        (
            "Would you like me to add 'milk' to the shopping list?",
            "add_shopping_item", {"name": "milk", "quantity": 1}, "Do you confirm?",
        ),
        (
            "Here are the ingredients to add:",
            "add_shopping_items",
            {"items": [{"name": "onion", "quantity": 1}, {"name": "carrots", "quantity": 2}]},
            "Do you confirm?",
        ),
    ),
)


LOCALES: dict[str, Locale] = {"it": _IT, "en": _EN}


def get_locale(language: str | None) -> Locale:
    """Return the locale for a language code, falling back to DEFAULT_LANGUAGE."""
    if language and language.lower() in LOCALES:
        return LOCALES[language.lower()]
    from family_assistant.config import settings

    return LOCALES.get(settings.DEFAULT_LANGUAGE, _IT)


def t(language: str | None, key: str, **kwargs: object) -> str:
    """Shorthand for get_locale(language).message(key, ...)."""
    return get_locale(language).message(key, **kwargs)
