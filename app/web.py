"""HTML page rendering for the interactive preferences view."""

from __future__ import annotations

import html
import json
from textwrap import dedent

from .config import Settings


APP_TEMPLATE = dedent(
    """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>__APP_NAME__</title>
    <style>
        :root {
            font-family: 'Inter', 'Segoe UI', system-ui, -apple-system, sans-serif;
            --surface: #ffffff;
            --surface-muted: #f9fafb;
            --outline: #d1d5db;
            --text-muted: #6b7280;
            --accent: #2563eb;
            --accent-strong: #1d4ed8;
            --danger: #b91c1c;
            --danger-surface: #fef2f2;
            color: #111827;
            background: #f3f4f6;
        }
        body {
            margin: 0;
        }
        header {
            display: flex;
            justify-content: space-between;
            align-items: center;
            padding: 1rem 2rem;
            background: var(--surface);
            border-bottom: 1px solid var(--outline);
        }
        header h1 {
            margin: 0;
            font-size: 1.5rem;
        }
        main {
            max-width: 56rem;
            margin: 0 auto;
            padding: 2rem;
        }
        button {
            border: none;
            border-radius: 6px;
            padding: 0.5rem 1rem;
            cursor: pointer;
            font: inherit;
        }
        button.primary {
            background: var(--accent);
            color: #ffffff;
        }
        button.primary:hover {
            background: var(--accent-strong);
        }
        button.secondary {
            background: #e5e7eb;
        }
        button:disabled {
            opacity: 0.6;
            cursor: not-allowed;
        }
        .toolbar {
            display: flex;
            justify-content: space-between;
            align-items: center;
            margin-bottom: 1.5rem;
            gap: 0.75rem;
        }
        .toolbar .actions {
            display: flex;
            gap: 0.75rem;
        }
        .error {
            background: var(--danger-surface);
            border: 1px solid #fecaca;
            border-radius: 6px;
            padding: 1rem;
            color: var(--danger);
            margin-bottom: 1rem;
        }
        .notice {
            color: var(--text-muted);
            margin-bottom: 1rem;
        }
        pre {
            background: var(--surface-muted);
            border: 1px solid var(--outline);
            border-radius: 8px;
            padding: 1rem;
            font-size: 0.875rem;
            max-height: 24rem;
            overflow: auto;
        }
        form {
            display: grid;
            gap: 0.75rem;
            max-width: 24rem;
            margin: 4rem auto;
        }
        input {
            padding: 0.5rem;
            border: 1px solid var(--outline);
            border-radius: 6px;
            font: inherit;
        }
        [hidden] {
            display: none !important;
        }
    </style>
</head>
<body>
    <header>
        <h1>__APP_NAME__</h1>
        <button id="sign-out" class="secondary" hidden>Sign Out</button>
    </header>
    <main>
        <form id="sign-in" hidden>
            <h2>Sign in with an app password</h2>
            <input name="identifier" placeholder="handle.bsky.social" autocomplete="username" required />
            <input name="password" type="password" placeholder="App password" autocomplete="current-password" required />
            <button class="primary" type="submit">Sign In</button>
            <div id="sign-in-error" class="error" hidden></div>
        </form>
        <section id="preferences" hidden>
            <div class="toolbar">
                <h2 id="preferences-title">Bluesky Preferences</h2>
                <div class="actions">
                    <button id="repair" class="secondary" hidden>Repair saved feeds</button>
                    <button id="export" class="primary">Export JSON</button>
                </div>
            </div>
            <div id="status" class="notice" hidden></div>
            <div id="error" class="error" hidden></div>
            <div id="repair-error" class="error" hidden></div>
            <pre><code id="document"></code></pre>
        </section>
    </main>
    <script>
        const exportFilename = __EXPORT_FILENAME__;
        const elements = {
            signIn: document.getElementById('sign-in'),
            signInError: document.getElementById('sign-in-error'),
            signOut: document.getElementById('sign-out'),
            section: document.getElementById('preferences'),
            status: document.getElementById('status'),
            error: document.getElementById('error'),
            repairError: document.getElementById('repair-error'),
            repair: document.getElementById('repair'),
            exportButton: document.getElementById('export'),
            documentView: document.getElementById('document'),
        };

        function showMessage(element, message) {
            element.textContent = message || '';
            element.hidden = !message;
        }

        function render(state) {
            elements.signIn.hidden = true;
            elements.signOut.hidden = false;
            elements.section.hidden = false;
            showMessage(elements.error, state.error);
            showMessage(elements.repairError, state.repairError);
            const feeds = state.savedFeeds || {};
            showMessage(
                elements.status,
                state.needsRepair
                    ? `${feeds.corrupted} of ${feeds.total} saved feeds have invalid ids.`
                    : ''
            );
            elements.repair.hidden = !state.needsRepair;
            elements.repair.disabled = Boolean(state.repairing);
            elements.exportButton.disabled = !state.preferences;
            elements.documentView.textContent = state.preferences
                ? JSON.stringify(state.preferences, null, 2)
                : '';
        }

        function showSignIn() {
            elements.signIn.hidden = false;
            elements.signOut.hidden = true;
            elements.section.hidden = true;
        }

        async function loadPreferences() {
            const response = await fetch('api/preferences');
            if (response.status === 401) {
                showSignIn();
                return;
            }
            render(await response.json());
        }

        elements.signIn.addEventListener('submit', async (event) => {
            event.preventDefault();
            showMessage(elements.signInError, '');
            const form = new FormData(elements.signIn);
            const response = await fetch('api/session', {
                method: 'POST',
                headers: { 'Content-Type': 'application/json' },
                body: JSON.stringify(Object.fromEntries(form.entries())),
            });
            const payload = await response.json();
            if (!response.ok && response.status !== 502) {
                const detail = payload.detail;
                showMessage(
                    elements.signInError,
                    typeof detail === 'string' ? detail : 'Sign in failed'
                );
                return;
            }
            render(payload);
        });

        elements.signOut.addEventListener('click', async () => {
            await fetch('api/session', { method: 'DELETE' });
            showSignIn();
        });

        elements.repair.addEventListener('click', async () => {
            elements.repair.disabled = true;
            const response = await fetch('api/preferences/repair', { method: 'POST' });
            const payload = await response.json();
            if (response.status === 409) {
                await loadPreferences();
                showMessage(elements.repairError, payload.detail);
                return;
            }
            render(payload);
        });

        elements.exportButton.addEventListener('click', async () => {
            const response = await fetch('api/preferences/export');
            if (!response.ok) {
                return;
            }
            const url = URL.createObjectURL(await response.blob());
            const link = document.createElement('a');
            link.href = url;
            link.download = exportFilename;
            document.body.appendChild(link);
            try {
                link.click();
            } finally {
                document.body.removeChild(link);
                URL.revokeObjectURL(url);
            }
        });

        loadPreferences();
    </script>
</body>
</html>
"""
)


def render_app_page(settings: Settings) -> str:
    """Return the single-page preferences view."""

    return APP_TEMPLATE.replace("__APP_NAME__", html.escape(settings.app_name)).replace(
        "__EXPORT_FILENAME__", json.dumps(settings.export_filename).replace("</", "<\\/")
    )
