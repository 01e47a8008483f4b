"""Header layouts of the workbook sheets (row 1 of each sheet)."""

FIELD_COLUMNS = ("Field ID", "Name", "Path", "Category", "Type", "Calculated", "List Name")

LIST_COLUMNS = ("List Name", "Value ID", "Value Label")

EMPLOYEE_COLUMNS = (
    "Bob ID",
    "Employee ID",
    "Display Name",
    "Site",
    "Location",
    "Status",
    "Employment Type",
    "Hire Date",
)

# Bulk Upload: the user fills the first two columns, the rest are written by the batch
UPLOAD_INPUT_COLUMNS = ("Employee ID", "New Value")
UPLOAD_RESULT_COLUMNS = (
    "Bob ID",
    "Field Path",
    "Status",
    "HTTP Code",
    "Error",
    "Verified Value",
    "Processed At",
)
UPLOAD_COLUMNS = UPLOAD_INPUT_COLUMNS + UPLOAD_RESULT_COLUMNS

HEADER_ROW = 1
