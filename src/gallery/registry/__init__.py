"""Version registry — a TypeScript source file edited as a small database.

Layout:
    versions/
    ├── index.ts             # imports + `export const versions = [...]`
    ├── v1-draft.tsx         # Companion component for record "v1"
    ├── v2-hero.tsx
    └── notes.json           # Notes document (see gallery.notes)

`scanner` understands the registry grammar, `editor` applies reclassify /
rename / delete transactions, `companion` owns the component files.
"""
