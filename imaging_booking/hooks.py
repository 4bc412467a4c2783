app_name = "imaging_booking"
app_title = "Imaging Booking"
app_publisher = "Imaging Booking Contributors"
app_description = "Reserva de equipos de imagenes para pacientes: borradores, conflictos y reprogramacion"
app_email = "dev@imaging-booking.local"
app_license = "mit"

# Apps
# ------------------

# required_apps = []

# Includes in <head>
# ------------------

# include js, css files in header of desk.html
# app_include_css = "/assets/imaging_booking/css/imaging_booking.css"
# app_include_js = "/assets/imaging_booking/js/imaging_booking.js"

# include js in doctype views
# doctype_js = {"doctype" : "public/js/doctype.js"}
# doctype_calendar_js = {"Imaging Appointment" : "public/js/imaging_appointment_calendar.js"}

# Installation
# ------------

# before_install = "imaging_booking.install.before_install"
# after_install = "imaging_booking.install.after_install"

# Notification payload extensions
# -------------------------------
# Other apps can add keys to the "data" block sent to the notification service.
# Each method receives (notification_type, appointment) and returns a dict.
#
# imaging_booking_notification_data = [
# 	"my_app.notifications.extra_appointment_data"
# ]

# Document Events
# ---------------
# Hook on document methods and events

# doc_events = {
# 	"Imaging Appointment": {
# 		"on_update": "method",
# 	}
# }

# Scheduled Tasks
# ---------------

scheduler_events = {
	"cron": {
		"*/15 * * * *": [  # Every 15 minutes
			"imaging_booking.imaging_booking.scheduling.tasks.sweep_expired_drafts"
		]
	},
	"hourly": [
		"imaging_booking.imaging_booking.scheduling.tasks.reconcile_orphaned_drafts"
	],
}

# Testing
# -------

# before_tests = "imaging_booking.install.before_tests"

# Overriding Methods
# ------------------------------
#
# override_whitelisted_methods = {
# 	"frappe.desk.doctype.event.event.get_events": "imaging_booking.event.get_events"
# }

# Request Events
# ----------------
# before_request = ["imaging_booking.utils.before_request"]
# after_request = ["imaging_booking.utils.after_request"]

# User Data Protection
# --------------------

# user_data_fields = [
# 	{
# 		"doctype": "Imaging Appointment",
# 		"filter_by": "patient",
# 		"redact_fields": ["contact", "private_health"],
# 		"partial": 1,
# 	},
# 	{
# 		"doctype": "Appointment Draft",
# 		"filter_by": "patient",
# 		"strict": False,
# 	},
# ]

# Automatically update python controller files with type annotations for this app.
# export_python_type_annotations = True
