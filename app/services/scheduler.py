# app/services/scheduler.py
"""
Scheduler service for report emails, overdue-task notices, chat retention
and presence housekeeping
"""

from datetime import datetime
from typing import Dict, Any
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.triggers.cron import CronTrigger
import logging

from app.database import SessionLocal
from app.services.chat_service import cleanup_old_messages
from app.services.notification_service import NotificationService
from app.services.presence_service import sweep_stale_presence, publish_presence
from app.services.report_service import process_scheduled_reports

logger = logging.getLogger(__name__)


class TaskScheduler:
    """Scheduler for the periodic jobs of the planner"""

    def __init__(self):
        self.scheduler = AsyncIOScheduler()
        self.is_running = False

    def start(self):
        """Start the scheduler"""
        if not self.is_running:
            # Reports go out at the top of every hour that matches a project's send time
            self.scheduler.add_job(
                self.run_scheduled_reports,
                trigger=CronTrigger(minute=0),
                id='process_scheduled_reports',
                name='Process Scheduled Reports',
                replace_existing=True
            )

            self.scheduler.add_job(
                self.check_overdue_tasks,
                trigger=CronTrigger(hour=9, minute=0),
                id='check_overdue_tasks',
                name='Daily Overdue Tasks Check',
                replace_existing=True
            )

            self.scheduler.add_job(
                self.cleanup_chat_messages,
                trigger=CronTrigger(hour=2, minute=0),
                id='cleanup_old_messages',
                name='Cleanup Old Chat Messages',
                replace_existing=True
            )

            self.scheduler.add_job(
                self.sweep_presence,
                trigger=IntervalTrigger(minutes=1),
                id='sweep_presence',
                name='Mark Stale Users Offline',
                replace_existing=True
            )

            self.scheduler.start()
            self.is_running = True
            logger.info("Task scheduler started successfully")

    def stop(self):
        """Stop the scheduler"""
        if self.is_running:
            self.scheduler.shutdown()
            self.is_running = False
            logger.info("Task scheduler stopped")

    async def run_scheduled_reports(self) -> Dict[str, Any]:
        logger.info("Processing scheduled reports...")
        db = SessionLocal()
        try:
            return process_scheduled_reports(db)
        except Exception as e:
            logger.error(f"Error processing scheduled reports: {e}")
            return {"message": str(e), "sent": 0, "results": []}
        finally:
            db.close()

    async def check_overdue_tasks(self) -> Dict[str, Any]:
        """Check for overdue tasks and send notifications"""
        logger.info("Checking for overdue tasks...")
        db = SessionLocal()
        try:
            sent, payloads = NotificationService.send_overdue_task_notices(db)
        except Exception as e:
            logger.error(f"Error checking overdue tasks: {e}")
            return {"success": False, "sent": 0}
        finally:
            db.close()
        await NotificationService.push(payloads)
        return {"success": True, "sent": sent}

    async def cleanup_chat_messages(self) -> Dict[str, Any]:
        logger.info("Cleaning up old chat messages...")
        db = SessionLocal()
        try:
            return cleanup_old_messages(db)
        except Exception as e:
            logger.error(f"Error cleaning up chat messages: {e}")
            return {"success": False, "totalDeleted": 0}
        finally:
            db.close()

    async def sweep_presence(self) -> Dict[str, Any]:
        db = SessionLocal()
        try:
            changes = sweep_stale_presence(db)
        except Exception as e:
            logger.error(f"Error sweeping presence: {e}")
            return {"offline": 0}
        finally:
            db.close()
        for new, old in changes:
            await publish_presence("UPDATE", new, old)
        return {"offline": len(changes)}

    async def get_scheduler_status(self) -> Dict[str, Any]:
        """Get scheduler status and job information"""
        if not self.is_running:
            return {"status": "stopped", "jobs": [], "checked_at": datetime.utcnow().isoformat()}

        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger)
            })

        return {
            "status": "running",
            "jobs": jobs,
            "checked_at": datetime.utcnow().isoformat()
        }

# Global scheduler instance
task_scheduler = TaskScheduler()
